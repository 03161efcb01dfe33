# snartnet/storage/sqlite.py
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from snartnet.config import Config
from snartnet.core.errors import StorageError
from . import KeyValueStorage

logger = logging.getLogger(__name__)


class SQLiteStorage(KeyValueStorage):
    """SQLite key-value storage for the local identity."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_path = Config().DB_PATH

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        try:
            self._conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_schema()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        logger.debug("Opened storage at %s", self.db_path)

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key         TEXT    PRIMARY KEY,
                value       TEXT    NOT NULL,
                updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
            )
        """)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Storage connection is closed")
        return self._conn

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        conn = self.conn
        try:
            return conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"SQLite error on {self.db_path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        row = self._execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        self._execute("""
            INSERT INTO kv (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
        """, (key, value))

    def remove_item(self, key: str) -> None:
        self._execute("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        return [row[0] for row in self._execute("SELECT key FROM kv ORDER BY key")]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
