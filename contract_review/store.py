from __future__ import annotations

import copy
import logging
import os
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class StoreConflict(Exception):
    """Raised by ``commit_if`` when a record in the read set changed since it was read."""

    def __init__(self, keys: Iterable[str]) -> None:
        self.keys = sorted(set(keys))
        super().__init__(f"stale read set: {', '.join(self.keys)}")


@dataclass(frozen=True)
class ServerTimestamp:
    """Placeholder resolved to the store clock at commit time.

    ``not_before`` clamps the resolved value so that a record stream whose head
    was read inside the same transaction never observes time going backwards.
    """

    not_before: str | None = None


SERVER_TIMESTAMP = ServerTimestamp()


@dataclass(frozen=True)
class VersionedRecord:
    key: str
    value: dict[str, Any]
    version: int


@dataclass(frozen=True)
class Write:
    key: str
    value: dict[str, Any] | None


class VersionedStore(Protocol):
    def read(self, key: str) -> tuple[dict[str, Any] | None, int]: ...

    def scan(self, prefix: str) -> list[VersionedRecord]: ...

    def commit_if(
        self,
        *,
        writes: list[Write],
        expected_versions: Mapping[str, int],
    ) -> dict[str, int]: ...

    def reset(self) -> None: ...


def utcnow_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


def resolve_server_timestamps(value: Any, *, now_iso: str) -> Any:
    if isinstance(value, ServerTimestamp):
        if value.not_before and value.not_before > now_iso:
            return value.not_before
        return now_iso
    if isinstance(value, dict):
        return {key: resolve_server_timestamps(item, now_iso=now_iso) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_server_timestamps(item, now_iso=now_iso) for item in value]
    return value


class InMemoryVersionedStore:
    """Arena of versioned records guarded by a single commit lock.

    Deleted records keep their last version as a tombstone so a key that is
    deleted and re-created never reuses a version a reader may still hold.
    Tombstone versions are only dropped by :meth:`reset`, so the version map
    grows with every key ever written; this backend is meant for tests and
    local development.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = {}
        self._last_commit_ts = ""

    def reset(self) -> None:
        with self._lock:
            self._records.clear()
            self._versions.clear()
            self._last_commit_ts = ""

    def read(self, key: str) -> tuple[dict[str, Any] | None, int]:
        with self._lock:
            value = self._records.get(key)
            return (copy.deepcopy(value) if value is not None else None), self._versions.get(key, 0)

    def scan(self, prefix: str) -> list[VersionedRecord]:
        with self._lock:
            return [
                VersionedRecord(key=key, value=copy.deepcopy(value), version=self._versions.get(key, 0))
                for key, value in sorted(self._records.items())
                if key.startswith(prefix)
            ]

    def _commit_timestamp(self) -> str:
        now_iso = utcnow_iso()
        if now_iso <= self._last_commit_ts:
            now_iso = self._last_commit_ts
        self._last_commit_ts = now_iso
        return now_iso

    def commit_if(
        self,
        *,
        writes: list[Write],
        expected_versions: Mapping[str, int],
    ) -> dict[str, int]:
        with self._lock:
            stale = [
                key
                for key, expected in expected_versions.items()
                if self._versions.get(key, 0) != int(expected)
            ]
            if stale:
                raise StoreConflict(stale)
            now_iso = self._commit_timestamp()
            committed: dict[str, int] = {}
            for write in writes:
                version = self._versions.get(write.key, 0) + 1
                if write.value is None:
                    self._records.pop(write.key, None)
                else:
                    self._records[write.key] = copy.deepcopy(
                        resolve_server_timestamps(write.value, now_iso=now_iso)
                    )
                self._versions[write.key] = version
                committed[write.key] = version
            return committed


def create_store_from_env(environ: Mapping[str, str] | None = None) -> VersionedStore:
    from contract_review.store_backends import PostgresVersionedStore, SqliteVersionedStore

    env = os.environ if environ is None else environ
    backend = env.get("CRL_STORE_BACKEND", "memory").strip().lower() or "memory"
    if backend == "sqlite":
        db_path = env.get("CRL_STORE_SQLITE_PATH", ".local/crl-store.sqlite3")
        logger.info("store_backend_selected backend=sqlite path=%s", db_path)
        return SqliteVersionedStore(db_path)
    if backend == "postgres":
        dsn = env.get("POSTGRES_DSN", "").strip()
        if not dsn:
            raise ValueError("POSTGRES_DSN must be set when CRL_STORE_BACKEND=postgres")
        table_name = env.get("CRL_STORE_POSTGRES_TABLE", "crl_records")
        logger.info("store_backend_selected backend=postgres table=%s", table_name)
        return PostgresVersionedStore(dsn=dsn, table_name=table_name)
    if backend != "memory":
        raise ValueError(f"unsupported CRL_STORE_BACKEND: {backend}")
    return InMemoryVersionedStore()


store = create_store_from_env()
