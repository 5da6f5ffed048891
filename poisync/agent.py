"""Device agent: wires the favorites store, sync engine and scheduler together."""

import asyncio
import logging
from typing import Any

from .config import Config
from .identity import IdentityProvider, StaticIdentityProvider
from .store import CursorStore, LocalFavoritesStore, SyncPreferences
from .sync import (
    AuthenticationError,
    FavoriteRecord,
    RemoteSyncClient,
    SyncEngine,
    SyncScheduler,
    favorite_from_poi,
)

logger = logging.getLogger(__name__)


class SyncAgent:
    """Owns the local favorites and keeps them in sync with the backend."""

    def __init__(
        self,
        config: Config,
        identity: IdentityProvider | None = None,
        remote: RemoteSyncClient | None = None,
    ):
        self.config = config
        self.identity = identity or StaticIdentityProvider.from_config(config.identity)

        self.store = LocalFavoritesStore(config.storage.db_path)
        self.cursor = CursorStore(config.storage.cursor_db_path or config.storage.db_path)
        self.preferences = SyncPreferences(self.cursor)
        self.remote = remote or RemoteSyncClient(
            base_url=config.remote.base_url,
            identity=self.identity,
            timeout=config.remote.timeout_seconds,
            user_agent=config.remote.user_agent,
            since_param=config.remote.since_param,
        )
        self.engine = SyncEngine(
            store=self.store,
            cursor=self.cursor,
            remote=self.remote,
            identity=self.identity,
            cursor_clock_fallback=config.sync.cursor_clock_fallback,
        )
        self.scheduler = SyncScheduler(
            self.engine, config.sync, preferences=self.preferences
        )

    def open(self) -> None:
        """Open local storage and apply sync settings saved by a previous run."""
        self.store.connect()
        self.cursor.connect()
        if self.preferences.load_into(self.config.sync):
            logger.info("Using saved sync settings over config defaults")

    async def start(self) -> None:
        """Open local storage and register periodic sync if enabled."""
        logger.info(f"Starting poisync agent: {self.config.node.name}")

        self.open()

        if self.config.sync.enabled:
            await self.scheduler.start()
        else:
            logger.info("Periodic sync disabled")

    async def stop(self) -> None:
        """Stop the agent."""
        logger.info("Stopping agent...")
        await self.scheduler.stop()
        await self.remote.close()
        self.cursor.close()
        self.store.close()
        logger.info("Agent stopped")

    def _require_user(self) -> str:
        user_id = self.identity.current_user_id()
        if not user_id:
            raise AuthenticationError("User is not authenticated")
        return user_id

    # ==================== Favorites ====================

    def add_favorite(self, poi: dict[str, Any]) -> FavoriteRecord:
        """Favorite a point of interest. Stored locally right away."""
        record = favorite_from_poi(self._require_user(), poi)
        self.store.upsert(record)
        logger.info(f"Favorited {record.poi_id} ({record.nombre})")
        return record

    def remove_favorite(self, poi_id: str) -> bool:
        """Unfavorite a point of interest.

        The removal is local only; it is not sent upstream on the next push.
        """
        removed = self.store.delete(poi_id, self._require_user())
        if removed:
            logger.info(f"Unfavorited {poi_id}")
        return removed

    def list_favorites(self) -> list[FavoriteRecord]:
        """Favorites of the signed-in user; nothing when signed out."""
        user_id = self.identity.current_user_id()
        if not user_id:
            return []
        return self.store.list(user_id)

    def get_status(self) -> dict[str, Any]:
        """Get a summary of local state and scheduler status."""
        user_id = self.identity.current_user_id()
        return {
            "node": self.config.node.name,
            "user_id": user_id,
            "remote_url": self.remote.base_url,
            "last_sync_timestamp": self.cursor.get(),
            "favorites": self.store.count(user_id) if user_id else 0,
            "scheduler": self.scheduler.get_status(),
        }


async def run_agent(config: Config, stop_event: asyncio.Event | None = None) -> None:
    """Run the agent until interrupted or ``stop_event`` is set.

    Args:
        config: Configuration for the agent.
        stop_event: Event to signal the agent should stop.
    """
    agent = SyncAgent(config)
    stop_event = stop_event or asyncio.Event()

    try:
        await agent.start()
        await stop_event.wait()
    finally:
        await agent.stop()
