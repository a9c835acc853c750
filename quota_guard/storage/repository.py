"""
Snapshot stores.

Durable string-keyed storage for usage snapshots. Stores make no
transactional promises: each ledger update is a separate read and write,
so a key must have a single writer.
"""

import sqlite3
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from quota_guard.config.loader import DEFAULT_DB_PATH
from .db import get_connection


class StoreError(Exception):
    """Raised when a store cannot read or write a key."""


class SnapshotStore(Protocol):
    """Minimal key-value contract the usage ledger depends on."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        ...

    def set(self, key: str, value: str) -> bool:
        """Store value under key. Returns False if the write was refused."""
        ...


class InMemorySnapshotStore:
    """Process-local store, mainly for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    def keys(self):
        return list(self._data.keys())


class SqliteSnapshotStore:
    """SQLite-backed store keeping one row per tracking key.

    Opens a fresh connection per call, so the database file can be shared
    with the CLI between runs.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, create: bool = True):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
            create: Create the schema if it doesn't exist yet
        """
        self.db_path = db_path
        if create:
            initialize_schema(db_path)

    def get(self, key: str) -> Optional[str]:
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT value FROM usage_snapshot WHERE key = ?", (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {key!r} from {self.db_path}: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> bool:
        try:
            conn = get_connection(self.db_path)
            try:
                conn.execute("""
                    INSERT INTO usage_snapshot (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                """, (key, value, datetime.now(timezone.utc).isoformat()))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write {key!r} to {self.db_path}: {e}") from e
        return True


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage_snapshot table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file

    Raises:
        StoreError: If the database cannot be opened or written
    """
    try:
        conn = get_connection(db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS usage_snapshot (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StoreError(f"Failed to initialize schema in {db_path}: {e}") from e
