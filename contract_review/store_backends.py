from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from contract_review.db.postgres import PostgresTxRunner, validate_identifier
from contract_review.store import (
    StoreConflict,
    VersionedRecord,
    Write,
    resolve_server_timestamps,
    utcnow_iso,
)


def _dumps(value: dict[str, Any]) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=True, separators=(",", ":"))


class SqliteVersionedStore:
    """Versioned record store persisted in one SQLite table.

    ``commit_if`` runs under ``BEGIN IMMEDIATE`` so the version check and the
    writes are serialized against every other writer of the same database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._initialize_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        return conn

    def _initialize_database(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                  key TEXT PRIMARY KEY,
                  version INTEGER NOT NULL,
                  payload TEXT
                )
                """
            )
        finally:
            conn.close()

    def reset(self) -> None:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM records")
            finally:
                conn.close()

    def read(self, key: str) -> tuple[dict[str, Any] | None, int]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT version, payload FROM records WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None, 0
        payload = json.loads(row[1]) if row[1] is not None else None
        return payload, int(row[0])

    def scan(self, prefix: str) -> list[VersionedRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT key, version, payload FROM records
                WHERE substr(key, 1, ?) = ? AND payload IS NOT NULL
                ORDER BY key
                """,
                (len(prefix), prefix),
            ).fetchall()
        finally:
            conn.close()
        return [VersionedRecord(key=row[0], value=json.loads(row[2]), version=int(row[1])) for row in rows]

    def commit_if(
        self,
        *,
        writes: list[Write],
        expected_versions: Mapping[str, int],
    ) -> dict[str, int]:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                current: dict[str, int] = {}
                keys = set(expected_versions) | {w.key for w in writes}
                for key in keys:
                    row = conn.execute("SELECT version FROM records WHERE key = ?", (key,)).fetchone()
                    current[key] = int(row[0]) if row is not None else 0
                stale = [key for key, expected in expected_versions.items() if current[key] != int(expected)]
                if stale:
                    conn.execute("ROLLBACK")
                    raise StoreConflict(stale)
                now_iso = utcnow_iso()
                committed: dict[str, int] = {}
                for write in writes:
                    version = current[write.key] + 1
                    payload = (
                        _dumps(resolve_server_timestamps(write.value, now_iso=now_iso))
                        if write.value is not None
                        else None
                    )
                    conn.execute(
                        """
                        INSERT INTO records(key, version, payload) VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET version = excluded.version, payload = excluded.payload
                        """,
                        (write.key, version, payload),
                    )
                    current[write.key] = version
                    committed[write.key] = version
                conn.execute("COMMIT")
                return committed
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            finally:
                conn.close()


class PostgresVersionedStore:
    """Versioned record store over one PostgreSQL table.

    Existing rows are locked with ``FOR UPDATE`` before their versions are
    compared; rows that did not exist when read are inserted with
    ``ON CONFLICT DO NOTHING`` so a concurrent creator is detected as a conflict.
    """

    def __init__(
        self,
        *,
        dsn: str = "",
        table_name: str = "crl_records",
        tx_runner: Any | None = None,
    ) -> None:
        self._table_name = validate_identifier(table_name.strip() or "crl_records")
        self._tx_runner = tx_runner or PostgresTxRunner(dsn)
        self._initialize_database()

    def _initialize_database(self) -> None:
        sql = f"""
            CREATE TABLE IF NOT EXISTS {self._table_name} (
              key TEXT PRIMARY KEY,
              version BIGINT NOT NULL,
              payload JSONB
            )
        """

        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                cur.execute(sql)

        self._tx_runner.run_in_tx(fn=_op)

    def reset(self) -> None:
        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                cur.execute(f"DELETE FROM {self._table_name}")

        self._tx_runner.run_in_tx(fn=_op)

    def read(self, key: str) -> tuple[dict[str, Any] | None, int]:
        sql = f"SELECT version, payload FROM {self._table_name} WHERE key = %s"

        def _op(conn: Any) -> tuple[dict[str, Any] | None, int]:
            with conn.cursor() as cur:
                cur.execute(sql, (key,))
                row = cur.fetchone()
            if row is None:
                return None, 0
            payload = row[1] if isinstance(row[1], dict) else None
            return payload, int(row[0])

        return self._tx_runner.run_in_tx(fn=_op)

    def scan(self, prefix: str) -> list[VersionedRecord]:
        sql = f"""
            SELECT key, version, payload FROM {self._table_name}
            WHERE left(key, %s) = %s AND payload IS NOT NULL
            ORDER BY key
        """

        def _op(conn: Any) -> list[VersionedRecord]:
            with conn.cursor() as cur:
                cur.execute(sql, (len(prefix), prefix))
                rows = cur.fetchall() or []
            return [
                VersionedRecord(key=row[0], value=row[2] if isinstance(row[2], dict) else {}, version=int(row[1]))
                for row in rows
            ]

        return self._tx_runner.run_in_tx(fn=_op)

    def commit_if(
        self,
        *,
        writes: list[Write],
        expected_versions: Mapping[str, int],
    ) -> dict[str, int]:
        lock_sql = f"SELECT key, version FROM {self._table_name} WHERE key = ANY(%s) FOR UPDATE"
        insert_sql = f"""
            INSERT INTO {self._table_name}(key, version, payload) VALUES (%s, 1, %s::jsonb)
            ON CONFLICT(key) DO NOTHING
        """
        update_sql = f"""
            UPDATE {self._table_name} SET version = version + 1, payload = %s::jsonb
            WHERE key = %s AND version = %s
        """

        def _op(conn: Any) -> dict[str, int]:
            keys = sorted(set(expected_versions) | {w.key for w in writes})
            with conn.cursor() as cur:
                cur.execute(lock_sql, (keys,))
                current = {row[0]: int(row[1]) for row in cur.fetchall() or []}
                stale = [
                    key
                    for key, expected in expected_versions.items()
                    if current.get(key, 0) != int(expected)
                ]
                if stale:
                    raise StoreConflict(stale)
                now_iso = utcnow_iso()
                committed: dict[str, int] = {}
                for write in writes:
                    version = current.get(write.key, 0)
                    payload = (
                        _dumps(resolve_server_timestamps(write.value, now_iso=now_iso))
                        if write.value is not None
                        else None
                    )
                    if version == 0:
                        cur.execute(insert_sql, (write.key, payload))
                    else:
                        cur.execute(update_sql, (payload, write.key, version))
                    if cur.rowcount != 1:
                        raise StoreConflict([write.key])
                    current[write.key] = version + 1
                    committed[write.key] = version + 1
                return committed

        return self._tx_runner.run_in_tx(fn=_op)
