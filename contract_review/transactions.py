"""Optimistic read-compute-write transactions over a versioned store.

A :class:`Transaction` records the version of every key it reads and buffers
every write. Reads of keys not yet in the read set are refused once a write
has been staged, which keeps each operation in the all-reads-then-all-writes
shape; repeated reads of a key are served from the snapshot taken by the
first read. There is no range read: a prefix scan has no version to guard,
so collections touched inside a transaction are reached through id lists
kept on an owning record. :func:`run_transaction` commits with
``commit_if`` and re-runs the whole callback on
:class:`~contract_review.store.StoreConflict`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from contract_review.errors import Conflict
from contract_review.store import StoreConflict, VersionedStore, Write

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Transaction:
    def __init__(self, store: VersionedStore) -> None:
        self._store = store
        self._snapshot: dict[str, dict[str, Any] | None] = {}
        self._read_versions: dict[str, int] = {}
        self._writes: dict[str, dict[str, Any] | None] = {}

    @property
    def has_writes(self) -> bool:
        return bool(self._writes)

    def _ensure_reads_allowed(self, what: str) -> None:
        if self._writes:
            raise RuntimeError(f"transaction read after write: {what}")

    def get(self, key: str) -> dict[str, Any] | None:
        if key in self._writes:
            return copy.deepcopy(self._writes[key])
        if key in self._snapshot:
            return copy.deepcopy(self._snapshot[key])
        self._ensure_reads_allowed(key)
        value, version = self._store.read(key)
        self._snapshot[key] = value
        self._read_versions[key] = version
        return copy.deepcopy(value)

    def set(self, key: str, value: dict[str, Any]) -> None:
        if key not in self._read_versions:
            raise RuntimeError(f"transaction write without read: {key}")
        self._writes[key] = copy.deepcopy(value)

    def create(self, key: str, value: dict[str, Any]) -> None:
        """Stage a record that must not exist when the transaction commits."""
        if key not in self._read_versions:
            self._read_versions[key] = 0
            self._snapshot[key] = None
        elif self._snapshot.get(key) is not None:
            raise RuntimeError(f"transaction create of existing key: {key}")
        self._writes[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        if key not in self._read_versions:
            raise RuntimeError(f"transaction delete without read: {key}")
        self._writes[key] = None

    def commit(self) -> dict[str, int]:
        if not self._writes:
            return {}
        writes = [Write(key=key, value=value) for key, value in self._writes.items()]
        return self._store.commit_if(writes=writes, expected_versions=dict(self._read_versions))


def run_transaction(
    store: VersionedStore,
    fn: Callable[[Transaction], T],
    *,
    max_attempts: int = 5,
    operation: str = "transaction",
) -> T:
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        tx = Transaction(store)
        result = fn(tx)
        try:
            tx.commit()
        except StoreConflict as exc:
            logger.info(
                "tx_conflict_retry operation=%s attempt=%s keys=%s",
                operation,
                attempt,
                ",".join(exc.keys),
            )
            continue
        return result
    logger.warning("tx_conflict_exhausted operation=%s attempts=%s", operation, attempts)
    raise Conflict(f"{operation} conflicted {attempts} times; retry the request")
