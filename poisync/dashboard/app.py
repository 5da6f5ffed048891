"""FastAPI control surface for favorites and sync settings."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..agent import SyncAgent
from ..sync import AuthenticationError, LocalStorageError

logger = logging.getLogger(__name__)


class FavoriteIn(BaseModel):
    """A point of interest to favorite."""

    id: str
    nombre: str = ""
    descripcion: str | None = None
    categoria: str | None = None
    direccion: str | None = None
    lat: float | None = None
    lon: float | None = None
    calificacion: float | None = None
    imagenes: list[str] = Field(default_factory=list)


class SyncSettingsIn(BaseModel):
    enabled: bool | None = None
    interval_hours: int | None = Field(default=None, ge=1, le=24)
    only_wifi: bool | None = None


def create_app(agent: SyncAgent) -> FastAPI:
    """Create the FastAPI dashboard application.

    Args:
        agent: Started SyncAgent whose store and scheduler are exposed.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Periodic work was registered on this server's loop
        await agent.scheduler.stop()

    app = FastAPI(
        title="poisync Dashboard",
        description="Favorites and sync settings for a poisync device",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.agent = agent

    def _record_to_dict(record) -> dict[str, Any]:
        return {
            "poi_id": record.poi_id,
            "user_id": record.user_id,
            "nombre": record.nombre,
            "descripcion": record.descripcion,
            "categoria": record.categoria,
            "direccion": record.direccion,
            "lat": record.lat,
            "lon": record.lon,
            "calificacion": record.calificacion,
            "imagen_url": record.imagen_url,
            "added_at": record.added_at,
            "updated_at": record.updated_at,
        }

    # ==================== Favorites ====================

    @app.get("/api/favorites")
    async def api_favorites() -> dict[str, Any]:
        """List the current user's favorites."""
        favorites = agent.list_favorites()
        return {
            "count": len(favorites),
            "favorites": [_record_to_dict(f) for f in favorites],
        }

    @app.post("/api/favorites", status_code=201)
    async def api_add_favorite(poi: FavoriteIn) -> dict[str, Any]:
        """Favorite a point of interest (stored locally, synced later)."""
        try:
            record = agent.add_favorite(poi.model_dump())
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e)) from e
        except LocalStorageError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return _record_to_dict(record)

    @app.delete("/api/favorites/{poi_id}")
    async def api_remove_favorite(poi_id: str) -> dict[str, Any]:
        """Unfavorite a point of interest."""
        try:
            removed = agent.remove_favorite(poi_id)
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e)) from e
        except LocalStorageError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        if not removed:
            raise HTTPException(status_code=404, detail=f"{poi_id} is not a favorite")
        return {"poi_id": poi_id, "removed": True}

    # ==================== Sync ====================

    @app.get("/api/sync/status")
    async def api_sync_status() -> dict[str, Any]:
        """Last sync time, scheduler state and last outcome."""
        return agent.get_status()

    @app.post("/api/sync/now")
    async def api_sync_now() -> dict[str, Any]:
        """Run a sync immediately and return its outcome."""
        outcome = await agent.scheduler.sync_now()
        return outcome.to_dict()

    @app.put("/api/sync/settings")
    async def api_sync_settings(settings: SyncSettingsIn) -> dict[str, Any]:
        """Change sync settings; the periodic registration is replaced."""
        await agent.scheduler.configure(
            enabled=settings.enabled,
            interval_hours=settings.interval_hours,
            only_wifi=settings.only_wifi,
        )
        return agent.scheduler.get_status()

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint.

        Always returns 200 OK; component problems are reported in the body.
        """
        health = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "node_name": agent.config.node.name,
            "components": {
                "authenticated": agent.identity.current_user_id() is not None,
                "scheduler_active": agent.scheduler.is_active(),
            },
        }

        try:
            health["components"]["store"] = agent.store.get_stats()
        except LocalStorageError as e:
            health["components"]["store_error"] = str(e)

        return health

    return app
