"""
Durable namespaced key-value store for ClawGuard.

Backs approval records and any plugin state that must survive a restart.
Uses SQLite so independent processes (the daemon, the CLI, a hook script)
can share the same state file.

Each transaction runs under BEGIN IMMEDIATE, which takes the database write
lock up front. A read-check-write inside one transaction is therefore atomic
with respect to every other process using the same file.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when the durable store cannot complete an operation."""

    pass


class StateTransaction:
    """Reads and writes bound to one open SQLite transaction."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, namespace: str, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM state WHERE namespace = ? AND key = ?",
            (namespace, key),
        ).fetchone()
        return row[0] if row else None

    def set(self, namespace: str, key: str, value: str):
        self._conn.execute(
            """
            INSERT INTO state (namespace, key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(namespace, key)
            DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
            (namespace, key, value, datetime.utcnow().isoformat() + "Z"),
        )

    def get_json(self, namespace: str, key: str) -> Optional[Any]:
        raw = self.get(namespace, key)
        return json.loads(raw) if raw is not None else None

    def set_json(self, namespace: str, key: str, value: Any):
        self.set(namespace, key, json.dumps(value))

    def keys(self, namespace: str) -> List[str]:
        cursor = self._conn.execute(
            "SELECT key FROM state WHERE namespace = ? ORDER BY key", (namespace,)
        )
        return [row[0] for row in cursor]


class StateStore:
    """
    SQLite-backed namespaced key-value store.

    Features:
    - set/get of text values per (namespace, key)
    - JSON helpers
    - Multi-key atomic transactions
    """

    def __init__(self, db_path: Optional[Path] = None, timeout: float = 10.0):
        self.db_path = (
            db_path or Path.home() / ".local" / "share" / "clawguard" / "clawguard.db"
        )
        self.timeout = timeout
        self._init_db()
        logger.info(f"StateStore initialized with db={self.db_path}")

    def _init_db(self):
        """Initialize SQLite database."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS state (
                        namespace TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        PRIMARY KEY (namespace, key)
                    )
                """
                )
        except (OSError, sqlite3.Error) as e:
            raise StateStoreError(f"Cannot open state store {self.db_path}: {e}") from e

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.timeout, isolation_level=None
        )
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[StateTransaction]:
        """
        Open an exclusive-write transaction.

        Commits on normal exit, rolls back if the block raises.
        sqlite3 errors surface as StateStoreError.
        """
        try:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield StateTransaction(conn)
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error(f"State store failure: {e}")
            raise StateStoreError(str(e)) from e

    def get(self, namespace: str, key: str) -> Optional[str]:
        with self.transaction() as txn:
            return txn.get(namespace, key)

    def set(self, namespace: str, key: str, value: str):
        with self.transaction() as txn:
            txn.set(namespace, key, value)

    def get_json(self, namespace: str, key: str) -> Optional[Any]:
        with self.transaction() as txn:
            return txn.get_json(namespace, key)

    def set_json(self, namespace: str, key: str, value: Any):
        with self.transaction() as txn:
            txn.set_json(namespace, key, value)

    def keys(self, namespace: str) -> List[str]:
        with self.transaction() as txn:
            return txn.keys(namespace)
