"""
Synchronous key-value storage media for persisted watch progress.

Two backends share the ``KeyValueStore`` interface:

- ``SqliteKeyValueStore`` — durable, a single ``kv_store`` table with
  thread-local connections.
- ``MemoryKeyValueStore`` — process-local, useful for ephemeral sessions.

Both honour an optional byte quota and raise ``StorageError`` whenever the
medium rejects a read or write.
"""

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .constants import DEFAULT_DB_FILENAME
from .utils import get_data_dir, setup_logger


class StorageError(Exception):
    """Raised when the storage medium is unavailable or rejects an operation."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...


def _size(value: str) -> int:
    return len(value.encode("utf-8"))


class MemoryKeyValueStore:
    """In-process key-value store with an optional byte quota"""

    def __init__(self, *, quota_bytes: int = 0):
        self.quota_bytes = int(quota_bytes or 0)
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes:
            used = sum(_size(v) for k, v in self._data.items() if k != key)
            if used + _size(value) > self.quota_bytes:
                raise StorageError(
                    f"Storage quota exceeded ({used + _size(value)} > {self.quota_bytes} bytes)"
                )
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._data)


class SqliteKeyValueStore:
    """Key-value store backed by SQLite (one connection per thread)"""

    def __init__(self, db_path: str = None, *, quota_bytes: int = 0):
        if not db_path:
            db_path = str(get_data_dir() / DEFAULT_DB_FILENAME)

        self.db_path = db_path
        self.quota_bytes = int(quota_bytes or 0)
        self.logger = setup_logger("storage", "storage.log")
        self._local = threading.local()
        try:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open progress database {db_path}: {e}") from e
        self.logger.info("Progress storage initialized with database: %s", db_path)

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local database connection"""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
        return self._local.conn

    def _init_db(self):
        """Initialize database schema"""
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT
            );
        """)
        conn.commit()

    def get(self, key: str) -> Optional[str]:
        try:
            row = self._get_conn().execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Read of '{key}' failed: {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            if self.quota_bytes:
                used = conn.execute(
                    "SELECT COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) FROM kv_store "
                    "WHERE key != ?",
                    (key,),
                ).fetchone()[0]
                if used + _size(value) > self.quota_bytes:
                    raise StorageError(
                        f"Storage quota exceeded ({used + _size(value)} > {self.quota_bytes} bytes)"
                    )
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Write of '{key}' failed: {e}") from e

    def delete(self, key: str) -> bool:
        conn = self._get_conn()
        try:
            result = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Delete of '{key}' failed: {e}") from e
        return result.rowcount > 0

    def close(self):
        """Close the current thread's connection"""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


def build_store(config: Dict[str, Any]) -> KeyValueStore:
    """Create the storage backend selected by the ``storage`` config section."""
    section = config.get("storage", {})
    backend = section.get("backend", "sqlite")
    quota = int(section.get("quota_bytes", 0) or 0)
    if backend == "memory":
        return MemoryKeyValueStore(quota_bytes=quota)
    if backend == "sqlite":
        return SqliteKeyValueStore(section.get("db_path") or None, quota_bytes=quota)
    raise ValueError(f"Unknown storage backend: {backend!r}")
