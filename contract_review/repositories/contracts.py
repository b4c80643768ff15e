from __future__ import annotations

from typing import Any

from contract_review.store import VersionedStore
from contract_review.transactions import Transaction

_PREFIX = "contracts/"


class ContractsRepository:
    """Contract records keyed by id; listing is always scoped to one owner or auditor."""

    @staticmethod
    def key(contract_id: str) -> str:
        return f"{_PREFIX}{contract_id}"

    def get(self, tx: Transaction, contract_id: str) -> dict[str, Any] | None:
        return tx.get(self.key(contract_id))

    def create(self, tx: Transaction, contract: dict[str, Any]) -> dict[str, Any]:
        tx.create(self.key(str(contract["contract_id"])), contract)
        return contract

    def put(self, tx: Transaction, contract: dict[str, Any]) -> dict[str, Any]:
        tx.set(self.key(str(contract["contract_id"])), contract)
        return contract

    def delete(self, tx: Transaction, contract_id: str) -> None:
        tx.delete(self.key(contract_id))

    def load(self, store: VersionedStore, contract_id: str) -> dict[str, Any] | None:
        row, _version = store.read(self.key(contract_id))
        return row

    def list_for_owner(self, store: VersionedStore, *, owner_id: str) -> list[dict[str, Any]]:
        rows = [record.value for record in store.scan(_PREFIX) if record.value.get("owner_id") == owner_id]
        return sorted(rows, key=lambda row: str(row.get("created_at") or ""), reverse=True)

    def list_for_auditor(self, store: VersionedStore, *, auditor_id: str) -> list[dict[str, Any]]:
        rows = [
            record.value
            for record in store.scan(_PREFIX)
            if auditor_id in (record.value.get("assigned_auditor_ids") or [])
        ]
        return sorted(rows, key=lambda row: str(row.get("updated_at") or ""), reverse=True)

    def list_all(self, store: VersionedStore) -> list[dict[str, Any]]:
        rows = [record.value for record in store.scan(_PREFIX)]
        return sorted(rows, key=lambda row: str(row.get("created_at") or ""), reverse=True)
