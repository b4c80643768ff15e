from __future__ import annotations

import hashlib
import json
from typing import Any

from contract_review.errors import IdempotencyConflict
from contract_review.store import VersionedStore
from contract_review.transactions import Transaction


def fingerprint(payload: dict[str, Any]) -> str:
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class IdempotencyRepository:
    """Recorded results of paid operations, written in the same transaction as the operation."""

    @staticmethod
    def key(scope: str, idempotency_key: str) -> str:
        digest = hashlib.sha256(idempotency_key.encode("utf-8")).hexdigest()[:32]
        return f"idempotency/{scope}/{digest}"

    @staticmethod
    def _replay(row: dict[str, Any], *, payload_fingerprint: str) -> dict[str, Any]:
        if row.get("fingerprint") != payload_fingerprint:
            raise IdempotencyConflict()
        return dict(row.get("data") or {})

    def lookup(
        self,
        store: VersionedStore,
        *,
        scope: str,
        idempotency_key: str,
        payload_fingerprint: str,
    ) -> dict[str, Any] | None:
        row, _version = store.read(self.key(scope, idempotency_key))
        if row is None:
            return None
        return self._replay(row, payload_fingerprint=payload_fingerprint)

    def lookup_in_tx(
        self,
        tx: Transaction,
        *,
        scope: str,
        idempotency_key: str,
        payload_fingerprint: str,
    ) -> dict[str, Any] | None:
        row = tx.get(self.key(scope, idempotency_key))
        if row is None:
            return None
        return self._replay(row, payload_fingerprint=payload_fingerprint)

    def record(
        self,
        tx: Transaction,
        *,
        scope: str,
        idempotency_key: str,
        payload_fingerprint: str,
        data: dict[str, Any],
    ) -> None:
        tx.set(
            self.key(scope, idempotency_key),
            {"scope": scope, "fingerprint": payload_fingerprint, "data": data},
        )

    def get_record(self, tx: Transaction, record_key: str) -> dict[str, Any] | None:
        return tx.get(record_key)

    def delete(self, tx: Transaction, record_key: str) -> None:
        tx.delete(record_key)
