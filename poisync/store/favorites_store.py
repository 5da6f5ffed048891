"""Local SQLite storage for favorite points of interest."""

import logging
import sqlite3
from pathlib import Path
from typing import Any

from ..sync.errors import LocalStorageError
from ..sync.models import FavoriteRecord, utc_now_iso

logger = logging.getLogger(__name__)

# SQL schema for the favorites database
SCHEMA = """
-- Favorites: one row per (user, poi); deletion is physical, no tombstones
CREATE TABLE IF NOT EXISTS favorites (
    user_id TEXT NOT NULL,
    poi_id TEXT NOT NULL,
    nombre TEXT NOT NULL,
    descripcion TEXT,
    categoria TEXT,
    direccion TEXT,
    lat REAL,
    lon REAL,
    calificacion REAL,
    imagen_url TEXT,
    added_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (user_id, poi_id)
);

CREATE INDEX IF NOT EXISTS idx_favorites_poi ON favorites(poi_id);
CREATE INDEX IF NOT EXISTS idx_favorites_added ON favorites(added_at);
"""

_COLUMNS = (
    "user_id, poi_id, nombre, descripcion, categoria, direccion, "
    "lat, lon, calificacion, imagen_url, added_at, updated_at"
)


def _scope(poi_id: str | None, user_id: str | None) -> tuple[str, list[Any]]:
    """Build a WHERE clause for an optional poi and optional user."""
    clauses = []
    params: list[Any] = []
    if poi_id is not None:
        clauses.append("poi_id = ?")
        params.append(poi_id)
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


class LocalFavoritesStore:
    """SQLite-backed favorites store.

    Every mutation runs in its own transaction, so a failure never leaves a
    single record half-applied. Nothing spans records.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageError(f"Cannot open favorites store: {e}", e) from e

        logger.info(f"LocalFavoritesStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalFavoritesStore connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> FavoriteRecord:
        return FavoriteRecord(**{key: row[key] for key in row.keys()})

    # ==================== Queries ====================

    def list(self, user_id: str | None = None) -> list[FavoriteRecord]:
        """Return every favorite, optionally only those of ``user_id``."""
        conn = self._ensure_connected()
        where, params = _scope(None, user_id)
        try:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM favorites{where} ORDER BY added_at DESC",
                params,
            ).fetchall()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to list favorites: {e}", e) from e

        return [self._row_to_record(row) for row in rows]

    def get(self, poi_id: str, user_id: str | None = None) -> FavoriteRecord | None:
        conn = self._ensure_connected()
        where, params = _scope(poi_id, user_id)
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM favorites{where} LIMIT 1", params
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to read favorite {poi_id}: {e}", e) from e

        return self._row_to_record(row) if row else None

    def contains(self, poi_id: str, user_id: str | None = None) -> bool:
        conn = self._ensure_connected()
        where, params = _scope(poi_id, user_id)
        try:
            row = conn.execute(
                f"SELECT EXISTS(SELECT 1 FROM favorites{where})", params
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to look up favorite {poi_id}: {e}", e) from e

        return bool(row[0])

    def count(self, user_id: str | None = None) -> int:
        conn = self._ensure_connected()
        where, params = _scope(None, user_id)
        try:
            row = conn.execute(f"SELECT COUNT(*) FROM favorites{where}", params).fetchone()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to count favorites: {e}", e) from e

        return row[0]

    # ==================== Mutations ====================

    def upsert(self, record: FavoriteRecord) -> None:
        """Insert a favorite, replacing any existing row for the same key.

        Replacement is delete followed by insert inside one transaction. The
        original ``added_at`` is carried over when the row already existed.
        """
        conn = self._ensure_connected()
        now = utc_now_iso()

        try:
            with conn:
                existing = conn.execute(
                    "SELECT added_at FROM favorites WHERE user_id = ? AND poi_id = ?",
                    (record.user_id, record.poi_id),
                ).fetchone()
                added_at = record.added_at or (existing["added_at"] if existing else now)

                conn.execute(
                    "DELETE FROM favorites WHERE user_id = ? AND poi_id = ?",
                    (record.user_id, record.poi_id),
                )
                conn.execute(
                    f"INSERT INTO favorites ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.user_id,
                        record.poi_id,
                        record.nombre,
                        record.descripcion,
                        record.categoria,
                        record.direccion,
                        record.lat,
                        record.lon,
                        record.calificacion,
                        record.imagen_url,
                        added_at,
                        now,
                    ),
                )
        except sqlite3.Error as e:
            raise LocalStorageError(
                f"Failed to store favorite {record.poi_id}: {e}", e
            ) from e

        record.added_at = added_at
        record.updated_at = now
        logger.debug(f"Stored favorite {record.poi_id} for {record.user_id}")

    def delete(self, poi_id: str, user_id: str | None = None) -> bool:
        """Delete a favorite. Deleting a missing row is not an error.

        Returns:
            True if a row was removed.
        """
        conn = self._ensure_connected()
        where, params = _scope(poi_id, user_id)
        try:
            with conn:
                cursor = conn.execute(f"DELETE FROM favorites{where}", params)
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to delete favorite {poi_id}: {e}", e) from e

        if cursor.rowcount:
            logger.debug(f"Deleted favorite {poi_id}")
        return cursor.rowcount > 0

    def clear(self, user_id: str | None = None) -> int:
        """Delete all favorites (of one user, if given)."""
        conn = self._ensure_connected()
        where, params = _scope(None, user_id)
        try:
            with conn:
                cursor = conn.execute(f"DELETE FROM favorites{where}", params)
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to clear favorites: {e}", e) from e

        logger.info(f"Cleared {cursor.rowcount} favorites")
        return cursor.rowcount

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        conn = self._ensure_connected()
        try:
            total = conn.execute("SELECT COUNT(*) FROM favorites").fetchone()[0]
            per_user = conn.execute(
                "SELECT user_id, COUNT(*) AS n FROM favorites GROUP BY user_id"
            ).fetchall()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to read store stats: {e}", e) from e

        return {
            "db_path": str(self.db_path),
            "total_favorites": total,
            "favorites_by_user": {row["user_id"]: row["n"] for row in per_user},
        }
