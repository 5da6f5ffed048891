"""Local persistence for poisync.

Provides SQLite-backed storage for:
- Favorite points of interest (the local source of truth between syncs)
- The sync cursor (last server timestamp successfully pulled)
- Sync settings changed at runtime
"""

from .cursor_store import CursorStore
from .favorites_store import LocalFavoritesStore
from .preferences import SyncPreferences

__all__ = ["CursorStore", "LocalFavoritesStore", "SyncPreferences"]
