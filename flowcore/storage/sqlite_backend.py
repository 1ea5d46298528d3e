"""
SQLite PersistentStore

Stores every blob in a single ``kv_store`` table keyed by name. One
connection is shared behind a lock, which serializes writes to the same key
in submission order.

Dependencies:
    - sqlite3 (stdlib)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from .base import PersistentStore, StorageError

logger = logging.getLogger(__name__)


class SqliteStore(PersistentStore):
    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn = self._get_connection()

    def _get_connection(self) -> sqlite3.Connection:
        """Open the database, creating the table if needed."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row

            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
            return conn
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open store at {self.db_path}: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to read '{key}': {e}") from e
        return bytes(row["value"]) if row else None

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                """,
                    (key, sqlite3.Binary(value), datetime.now().isoformat()),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        with self._lock:
            try:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to delete '{key}': {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug(f"Closed store at {self.db_path}")
