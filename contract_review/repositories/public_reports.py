from __future__ import annotations

from typing import Any

from contract_review.store import VersionedStore
from contract_review.transactions import Transaction


class PublicReportsRepository:
    @staticmethod
    def key(report_id: str) -> str:
        return f"public_reports/{report_id}"

    def create(self, tx: Transaction, report: dict[str, Any]) -> dict[str, Any]:
        tx.create(self.key(str(report["report_id"])), report)
        return report

    def load(self, store: VersionedStore, report_id: str) -> dict[str, Any] | None:
        row, _version = store.read(self.key(report_id))
        return row
