"""Durable storage for the last-synchronized cursor."""

import logging
import sqlite3
from pathlib import Path

from ..sync.errors import LocalStorageError

logger = logging.getLogger(__name__)

CURSOR_SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class CursorStore:
    """Single-scalar key/value store for the sync cursor.

    The cursor is an opaque ISO-8601 string. Last write wins; no history.
    """

    KEY = "last_sync_timestamp"

    def __init__(self, db_path: str | Path, key: str = KEY):
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self.key = key
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.executescript(CURSOR_SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageError(f"Cannot open cursor store: {e}", e) from e

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def get(self) -> str | None:
        """Return the cursor, or None if this installation never synced."""
        return self.get_value(self.key)

    def set(self, value: str) -> None:
        self.set_value(self.key, value)
        logger.debug(f"Sync cursor saved: {value}")

    def clear(self) -> None:
        """Forget the cursor so the next pull starts from scratch."""
        conn = self._ensure_connected()
        try:
            with conn:
                conn.execute("DELETE FROM sync_state WHERE key = ?", (self.key,))
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to clear sync cursor: {e}", e) from e

    # ==================== Raw state ====================

    def get_value(self, key: str) -> str | None:
        """Read any row of the sync_state table."""
        conn = self._ensure_connected()
        try:
            row = conn.execute(
                "SELECT value FROM sync_state WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to read sync state {key}: {e}", e) from e

        return row[0] if row else None

    def set_value(self, key: str, value: str) -> None:
        conn = self._ensure_connected()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO sync_state (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to save sync state {key}: {e}", e) from e
