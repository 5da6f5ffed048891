"""Offline-first favorites synchronization.

Provides a pull/merge/push engine between the local favorites store and the
backend, plus a scheduler that runs it periodically under network and battery
constraints.
"""

from .engine import SyncEngine
from .errors import (
    AuthenticationError,
    EmptyResponseError,
    LocalStorageError,
    ServerError,
    SyncConnectionError,
    SyncError,
)
from .models import (
    FavoriteRecord,
    SyncOutcome,
    SyncResult,
    SyncStatus,
    WireFavorite,
    favorite_from_poi,
)
from .remote import RemoteSyncClient
from .scheduler import SyncScheduler

__all__ = [
    "AuthenticationError",
    "EmptyResponseError",
    "FavoriteRecord",
    "LocalStorageError",
    "RemoteSyncClient",
    "ServerError",
    "SyncConnectionError",
    "SyncEngine",
    "SyncError",
    "SyncOutcome",
    "SyncResult",
    "SyncScheduler",
    "SyncStatus",
    "WireFavorite",
    "favorite_from_poi",
]
