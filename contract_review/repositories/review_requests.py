from __future__ import annotations

from typing import Any

from contract_review.store import VersionedStore
from contract_review.transactions import Transaction

_PREFIX = "review_requests/"


class ReviewRequestsRepository:
    """Review requests keyed by request id.

    Transactions never scan this collection: the owning contract keeps the ids
    of its requests, so reads inside a transaction stay point lookups and the
    contract version guards the set of requests.
    """

    @staticmethod
    def key(request_id: str) -> str:
        return f"{_PREFIX}{request_id}"

    def get(self, tx: Transaction, request_id: str) -> dict[str, Any] | None:
        return tx.get(self.key(request_id))

    def get_many(self, tx: Transaction, request_ids: list[str]) -> list[dict[str, Any]]:
        rows = []
        for request_id in request_ids:
            row = self.get(tx, request_id)
            if row is not None:
                rows.append(row)
        return rows

    def create(self, tx: Transaction, request: dict[str, Any]) -> dict[str, Any]:
        tx.create(self.key(str(request["request_id"])), request)
        return request

    def put(self, tx: Transaction, request: dict[str, Any]) -> dict[str, Any]:
        tx.set(self.key(str(request["request_id"])), request)
        return request

    def delete(self, tx: Transaction, request_id: str) -> None:
        tx.delete(self.key(request_id))

    def load(self, store: VersionedStore, request_id: str) -> dict[str, Any] | None:
        row, _version = store.read(self.key(request_id))
        return row

    def list_for_auditor(
        self,
        store: VersionedStore,
        *,
        auditor_id: str,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = [
            record.value
            for record in store.scan(_PREFIX)
            if record.value.get("auditor_id") == auditor_id
            and (status is None or record.value.get("status") == status)
        ]
        return sorted(rows, key=lambda row: str(row.get("requested_at") or ""))

    def list_for_contract(self, store: VersionedStore, *, contract_id: str) -> list[dict[str, Any]]:
        rows = [record.value for record in store.scan(_PREFIX) if record.value.get("contract_id") == contract_id]
        return sorted(rows, key=lambda row: str(row.get("requested_at") or ""))
