"""Favorite records in their local and wire forms, plus sync result values."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import SyncError

# Placeholder used when a POI arrives without a usable name
DEFAULT_NOMBRE = "Sin nombre"


def utc_now_iso() -> str:
    """Current device time as an ISO-8601 UTC string (``...Z``)."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _non_empty(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _rating(value: Any) -> float | None:
    # Zero means "not rated", same as absent
    rating = _as_float(value)
    if rating is None or rating <= 0:
        return None
    return rating


@dataclass
class FavoriteRecord:
    """A favorite as kept in the local store.

    There is no ``is_favorite`` flag here: a row existing in the store is the
    positive state, and removal deletes it.
    """

    user_id: str
    poi_id: str
    nombre: str = DEFAULT_NOMBRE
    descripcion: str | None = None
    categoria: str | None = None
    direccion: str | None = None
    lat: float | None = None
    lon: float | None = None
    calificacion: float | None = None
    imagen_url: str | None = None
    added_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self) -> None:
        self.nombre = _non_empty(self.nombre) or DEFAULT_NOMBRE
        self.descripcion = _non_empty(self.descripcion)
        self.categoria = _non_empty(self.categoria)
        self.direccion = _non_empty(self.direccion)
        self.imagen_url = _non_empty(self.imagen_url)
        self.lat = _as_float(self.lat)
        self.lon = _as_float(self.lon)
        self.calificacion = _rating(self.calificacion)

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.poi_id)

    def to_wire(self, timestamp: str | None = None) -> "WireFavorite":
        """Convert to wire form as an upsert stamped with ``timestamp``."""
        return WireFavorite(
            user_id=self.user_id,
            poi_id=self.poi_id,
            nombre=self.nombre,
            descripcion=self.descripcion,
            categoria=self.categoria,
            direccion=self.direccion,
            lat=self.lat,
            lon=self.lon,
            calificacion=self.calificacion,
            imagen_url=self.imagen_url,
            is_favorite=True,
            timestamp=timestamp or utc_now_iso(),
        )


@dataclass
class WireFavorite:
    """A favorite as exchanged with the backend."""

    user_id: str
    poi_id: str
    nombre: str = DEFAULT_NOMBRE
    descripcion: str | None = None
    categoria: str | None = None
    direccion: str | None = None
    lat: float | None = None
    lon: float | None = None
    calificacion: float | None = None
    imagen_url: str | None = None
    is_favorite: bool = True
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the backend's JSON shape."""
        return {
            "userId": self.user_id,
            "poiId": self.poi_id,
            "nombre": self.nombre,
            "descripcion": self.descripcion,
            "categoria": self.categoria,
            "direccion": self.direccion,
            "lat": self.lat,
            "lon": self.lon,
            "calificacion": self.calificacion,
            "imagenUrl": self.imagen_url,
            "isFavorite": self.is_favorite,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], user_id: str = "") -> "WireFavorite":
        """Create from the backend's JSON shape, ignoring unknown keys.

        Raises:
            KeyError: ``poiId`` is missing.
            ValueError: ``poiId`` is null or blank, or ``isFavorite`` is not a
                JSON boolean.
        """
        poi_id = _non_empty(data["poiId"])
        if poi_id is None:
            raise ValueError(f"Invalid poiId: {data['poiId']!r}")
        is_favorite = data.get("isFavorite", True)
        if not isinstance(is_favorite, bool):
            raise ValueError(f"Invalid isFavorite for {poi_id}: {is_favorite!r}")

        return cls(
            user_id=data.get("userId") or user_id,
            poi_id=poi_id,
            nombre=_non_empty(data.get("nombre")) or DEFAULT_NOMBRE,
            descripcion=data.get("descripcion"),
            categoria=data.get("categoria"),
            direccion=data.get("direccion"),
            lat=_as_float(data.get("lat")),
            lon=_as_float(data.get("lon")),
            calificacion=_rating(data.get("calificacion")),
            imagen_url=data.get("imagenUrl"),
            is_favorite=is_favorite,
            timestamp=data.get("timestamp"),
        )

    def to_record(self) -> FavoriteRecord:
        return FavoriteRecord(
            user_id=self.user_id,
            poi_id=self.poi_id,
            nombre=self.nombre,
            descripcion=self.descripcion,
            categoria=self.categoria,
            direccion=self.direccion,
            lat=self.lat,
            lon=self.lon,
            calificacion=self.calificacion,
            imagen_url=self.imagen_url,
        )


def favorite_from_poi(user_id: str, poi: dict[str, Any]) -> FavoriteRecord:
    """Build a favorite from a point-of-interest payload.

    Accepts either flat ``lat``/``lon``/``direccion`` keys or a nested
    ``ubicacion`` object, and keeps only the first entry of ``imagenes``.
    """
    location = poi.get("ubicacion") or {}
    images = poi.get("imagenes") or []
    return FavoriteRecord(
        user_id=user_id,
        poi_id=str(poi.get("id") or poi["poi_id"]),
        nombre=poi.get("nombre", ""),
        descripcion=poi.get("descripcion"),
        categoria=poi.get("categoria"),
        direccion=poi.get("direccion") or location.get("direccion"),
        lat=poi["lat"] if poi.get("lat") is not None else location.get("lat"),
        lon=poi["lon"] if poi.get("lon") is not None else location.get("lon"),
        calificacion=poi.get("calificacion"),
        imagen_url=images[0] if images else poi.get("imagen_url"),
    )


@dataclass
class PullResponse:
    """Decoded body of a pull call."""

    server_timestamp: str | None
    records: list[WireFavorite] = field(default_factory=list)


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Push went through, pull did not
    FAILED = "failed"
    OFFLINE = "offline"  # Network or power constraints not met


@dataclass
class SyncResult:
    """Summary of one sync attempt. Counts are pull-phase effects."""

    server_timestamp: str | None = None
    favorites_added: int = 0
    favorites_updated: int = 0
    favorites_removed: int = 0
    message: str = ""


@dataclass
class SyncOutcome:
    """Structured success/failure value returned by every sync entry point."""

    status: SyncStatus
    result: SyncResult | None = None
    records_pushed: int = 0
    errors: list[SyncError] = field(default_factory=list)
    timestamp: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL)

    @property
    def retryable(self) -> bool:
        """True when the attempt failed only for reasons worth retrying."""
        if self.ok:
            return False
        if self.status == SyncStatus.OFFLINE:
            return True
        return any(e.retryable for e in self.errors)

    @property
    def error(self) -> str | None:
        if self.result and not self.ok:
            return self.result.message
        if self.errors:
            return "; ".join(str(e) for e in self.errors)
        return None

    @property
    def message(self) -> str:
        if self.result:
            return self.result.message
        return self.error or ""

    def to_dict(self) -> dict[str, Any]:
        result = self.result
        return {
            "status": self.status.value,
            "ok": self.ok,
            "message": self.message,
            "server_timestamp": result.server_timestamp if result else None,
            "favorites_added": result.favorites_added if result else 0,
            "favorites_updated": result.favorites_updated if result else 0,
            "favorites_removed": result.favorites_removed if result else 0,
            "records_pushed": self.records_pushed,
            "errors": [
                {"type": type(e).__name__, "message": str(e)} for e in self.errors
            ],
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
