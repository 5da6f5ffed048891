"""Tests for the SQLite favorites and cursor stores."""

import sqlite3

import pytest

from poisync.config import SyncConfig
from poisync.store import CursorStore, LocalFavoritesStore, SyncPreferences
from poisync.sync import FavoriteRecord, LocalStorageError


@pytest.fixture
def store():
    """Create an in-memory favorites store."""
    store = LocalFavoritesStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def cursor():
    """Create an in-memory cursor store."""
    cursor = CursorStore(":memory:")
    cursor.connect()
    yield cursor
    cursor.close()


class TestLocalFavoritesStore:
    """Tests for LocalFavoritesStore."""

    def test_connect_creates_schema(self, store):
        tables = store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        assert "favorites" in [t[0] for t in tables]

    def test_upsert_and_get(self, store):
        """Test storing and reading back a favorite."""
        store.upsert(FavoriteRecord("u1", "p1", nombre="Museo", lat=1.0, lon=2.0))

        record = store.get("p1", "u1")

        assert record is not None
        assert record.nombre == "Museo"
        assert record.lat == 1.0
        assert record.added_at is not None
        assert record.updated_at is not None

    def test_upsert_replaces_and_keeps_added_at(self, store):
        """Test that replacing a favorite keeps one row and its added_at."""
        store.upsert(FavoriteRecord("u1", "p1", nombre="Old"))
        first = store.get("p1", "u1")

        store.upsert(FavoriteRecord("u1", "p1", nombre="New"))
        second = store.get("p1", "u1")

        assert store.count() == 1
        assert second.nombre == "New"
        assert second.added_at == first.added_at

    def test_upsert_updates_record_timestamps(self, store):
        record = FavoriteRecord("u1", "p1")
        store.upsert(record)
        assert record.added_at is not None
        assert record.updated_at is not None

    def test_users_are_separate(self, store):
        store.upsert(FavoriteRecord("u1", "p1"))
        store.upsert(FavoriteRecord("u2", "p1"))

        assert store.count() == 2
        assert store.count("u1") == 1
        assert [r.user_id for r in store.list("u2")] == ["u2"]

    def test_contains(self, store):
        store.upsert(FavoriteRecord("u1", "p1"))

        assert store.contains("p1", "u1")
        assert store.contains("p1")
        assert not store.contains("p1", "u2")
        assert not store.contains("p2")

    def test_list_newest_first(self, store):
        store.upsert(FavoriteRecord("u1", "a", added_at="2026-01-01T00:00:00Z"))
        store.upsert(FavoriteRecord("u1", "b", added_at="2026-03-01T00:00:00Z"))
        store.upsert(FavoriteRecord("u1", "c", added_at="2026-02-01T00:00:00Z"))

        assert [r.poi_id for r in store.list("u1")] == ["b", "c", "a"]

    def test_delete(self, store):
        store.upsert(FavoriteRecord("u1", "p1"))

        assert store.delete("p1", "u1") is True
        assert store.get("p1", "u1") is None

    def test_delete_missing_is_noop(self, store):
        assert store.delete("nope", "u1") is False

    def test_clear(self, store):
        store.upsert(FavoriteRecord("u1", "p1"))
        store.upsert(FavoriteRecord("u1", "p2"))
        store.upsert(FavoriteRecord("u2", "p3"))

        assert store.clear("u1") == 2
        assert store.count() == 1

    def test_get_stats(self, store):
        store.upsert(FavoriteRecord("u1", "p1"))
        store.upsert(FavoriteRecord("u2", "p2"))

        stats = store.get_stats()

        assert stats["total_favorites"] == 2
        assert stats["favorites_by_user"] == {"u1": 1, "u2": 1}
        assert stats["db_path"] == ":memory:"

    def test_lazy_connect(self):
        store = LocalFavoritesStore(":memory:")
        assert store.count() == 0
        store.close()

    def test_file_backed_store_persists(self, tmp_path):
        db_path = tmp_path / "nested" / "favorites.db"
        store = LocalFavoritesStore(db_path)
        store.connect()
        store.upsert(FavoriteRecord("u1", "p1", nombre="Kept"))
        store.close()

        reopened = LocalFavoritesStore(db_path)
        reopened.connect()
        assert reopened.get("p1", "u1").nombre == "Kept"
        reopened.close()

    def test_sqlite_errors_are_wrapped(self, store):
        store._conn.execute("DROP TABLE favorites")

        with pytest.raises(LocalStorageError) as exc_info:
            store.list("u1")

        assert isinstance(exc_info.value.cause, sqlite3.Error)


class TestCursorStore:
    """Tests for CursorStore."""

    def test_empty_cursor(self, cursor):
        assert cursor.get() is None

    def test_set_and_get(self, cursor):
        cursor.set("2026-01-01T00:00:00Z")
        cursor.set("2026-02-01T00:00:00Z")

        assert cursor.get() == "2026-02-01T00:00:00Z"

    def test_clear(self, cursor):
        cursor.set("T1")
        cursor.clear()
        assert cursor.get() is None

    def test_shares_database_with_favorites(self, tmp_path):
        db_path = tmp_path / "favorites.db"
        store = LocalFavoritesStore(db_path)
        store.connect()
        cursor = CursorStore(db_path)
        cursor.connect()

        cursor.set("T1")
        store.upsert(FavoriteRecord("u1", "p1"))

        assert cursor.get() == "T1"
        assert store.count() == 1
        cursor.close()
        store.close()

    def test_survives_reopen(self, tmp_path):
        db_path = tmp_path / "state.db"
        cursor = CursorStore(db_path)
        cursor.set("T9")
        cursor.close()

        assert CursorStore(db_path).get() == "T9"

    def test_raw_values_do_not_touch_cursor(self, cursor):
        cursor.set("T1")
        cursor.set_value("other", "x")
        cursor.set_value("other", "y")

        assert cursor.get_value("other") == "y"
        assert cursor.get_value("missing") is None
        cursor.clear()
        assert cursor.get_value("other") == "y"


class TestSyncPreferences:
    """Tests for SyncPreferences."""

    def test_nothing_saved_keeps_defaults(self, cursor):
        settings = SyncConfig(enabled=True, interval_hours=6, only_wifi=False)

        assert SyncPreferences(cursor).load_into(settings) is False
        assert (settings.enabled, settings.interval_hours, settings.only_wifi) == (True, 6, False)

    def test_saved_values_override(self, cursor):
        SyncPreferences(cursor).save(SyncConfig(enabled=False, interval_hours=24, only_wifi=True))
        settings = SyncConfig()

        assert SyncPreferences(cursor).load_into(settings) is True
        assert settings.enabled is False
        assert settings.interval_hours == 24
        assert settings.only_wifi is True

    def test_bad_interval_ignored(self, cursor):
        cursor.set_value(SyncPreferences.INTERVAL_KEY, "often")
        settings = SyncConfig(interval_hours=6)

        SyncPreferences(cursor).load_into(settings)

        assert settings.interval_hours == 6
