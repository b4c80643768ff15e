from __future__ import annotations

from typing import Any

from contract_review.store import VersionedStore
from contract_review.transactions import Transaction

_PREFIX = "accounts/"


class AccountsRepository:
    @staticmethod
    def key(account_id: str) -> str:
        return f"{_PREFIX}{account_id}"

    def get(self, tx: Transaction, account_id: str) -> dict[str, Any] | None:
        return tx.get(self.key(account_id))

    def get_many(self, tx: Transaction, account_ids: list[str]) -> dict[str, dict[str, Any]]:
        found: dict[str, dict[str, Any]] = {}
        for account_id in account_ids:
            row = self.get(tx, account_id)
            if row is not None:
                found[account_id] = row
        return found

    def create(self, tx: Transaction, account: dict[str, Any]) -> dict[str, Any]:
        tx.create(self.key(str(account["account_id"])), account)
        return account

    def put(self, tx: Transaction, account: dict[str, Any]) -> dict[str, Any]:
        tx.set(self.key(str(account["account_id"])), account)
        return account

    def load(self, store: VersionedStore, account_id: str) -> dict[str, Any] | None:
        row, _version = store.read(self.key(account_id))
        return row

    def list(self, store: VersionedStore, *, role: str | None = None) -> list[dict[str, Any]]:
        rows = [record.value for record in store.scan(_PREFIX)]
        if role is not None:
            rows = [row for row in rows if row.get("role") == role]
        return rows
