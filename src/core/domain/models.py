"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Validación estricta en el borde: lo que llega del backend (o de los datasets
  de respaldo) pasa por el mismo esquema antes de llegar a las vistas.
- El JSON del backend es camelCase; los atributos Python son snake_case
  (alias generator + `populate_by_name`).

Nota:
- Estos modelos describen *qué* es la información, no *cómo* se obtiene.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict


PLACEHOLDER_PREFIX = "local-"
PIN_PREFIX = "pin-"

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_placeholder_id() -> str:
    """Id sintetizado localmente antes de que el servidor asigne uno."""

    return f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex[:12]}"


def pin_id_for(entity_id: str) -> str:
    return f"{PIN_PREFIX}{entity_id}"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Serializa a JSON del backend (camelCase, sin nulos)."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LocationSource(str, Enum):
    GPS = "GPS"
    MANUAL = "MANUAL"
    ESTIMATED = "ESTIMATED"


class EntityKind(str, Enum):
    CATTLE = "cattle"
    PASTURE = "pasture"
    RANCH = "ranch"


class DeviceType(str, Enum):
    GPS_COLLAR = "gps_collar"
    EAR_TAG = "ear_tag"
    MANUAL = "manual"
    RFID = "rfid"


class GeoLocation(_WireModel):
    """Ubicación completa de una entidad.

    Cada actualización reemplaza la anterior entera (sin merge).
    """

    latitude: float = Field(..., ge=-90.0, le=90.0, description="Latitud en grados decimales.")
    longitude: float = Field(..., ge=-180.0, le=180.0, description="Longitud en grados decimales.")
    altitude: float | None = Field(default=None, description="Altitud (m), si el sensor la reporta.")
    accuracy: float | None = Field(default=None, ge=0.0, description="Precisión horizontal (m).")
    timestamp: datetime = Field(default_factory=utc_now, description="Momento de la lectura.")
    source: LocationSource = Field(default=LocationSource.MANUAL, description="Origen de la lectura.")

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TrackingConfig(_WireModel):
    """Configuración de rastreo enviada junto a cada actualización de ubicación."""

    is_enabled: bool = Field(default=True)
    device_type: DeviceType = Field(default=DeviceType.MANUAL)
    device_id: str | None = None
    battery_level: float | None = Field(default=None, ge=0.0, le=100.0)
    signal_strength: float | None = Field(default=None, ge=0.0, le=100.0)
    update_interval: int | None = Field(default=None, ge=1, description="Intervalo de reporte (minutos).")
    geofence_alerts: bool = Field(default=True)
    notes: str | None = None


class TrackedEntity(_WireModel):
    """Animal, potrero o perfil de rancho que puede tener ubicación.

    Los campos de dominio extra que mande el backend se conservan.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str = Field(..., min_length=1)
    kind: EntityKind = Field(default=EntityKind.CATTLE)
    ear_tag: str = Field(default="", description="Arete / identificador visible.")
    name: str | None = None
    breed: str = Field(default="")
    cattle_type: str | None = None
    age: float | None = Field(default=None, description="Edad (años en altas, meses en el listado legado).")
    weight: float | None = Field(default=None, ge=0.0)
    sex: str | None = None
    health_status: str = Field(default="healthy")
    location: GeoLocation | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.id.startswith(PLACEHOLDER_PREFIX)


class LocationPin(_WireModel):
    """Proyección de una entidad con ubicación, lista para dibujar."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str
    entity_ref: str
    coordinate: tuple[float, float] = Field(..., description="(lat, lng)")
    accuracy: float = Field(default=0.0, ge=0.0)
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
    added_by: str = Field(default="manual", description="gps | manual | estimated")

    @classmethod
    def from_entity(cls, entity: TrackedEntity) -> "LocationPin | None":
        location = entity.location
        if location is None:
            return None
        return cls(
            id=pin_id_for(entity.id),
            entity_ref=entity.id,
            coordinate=(location.latitude, location.longitude),
            accuracy=location.accuracy or 0.0,
            timestamp=location.timestamp,
            metadata={
                "ear_tag": entity.ear_tag,
                "name": entity.name,
                "breed": entity.breed,
                "health_status": entity.health_status,
                "kind": entity.kind.value,
            },
            added_by=location.source.value.lower(),
        )


class ConnectionPhase(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ConnectionStatus(_WireModel):
    """Estado de conectividad publicado por el monitor (inmutable)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    is_connected: bool = False
    last_check: datetime | None = None
    latency_ms: float = Field(default=0.0, ge=0.0)
    retrying: bool = False
    phase: ConnectionPhase = ConnectionPhase.IDLE
    error: str | None = None


class ApiEnvelope(BaseModel, Generic[T]):
    """Sobre estándar del backend: `{success, data, message?}`."""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    data: T | None = None
    message: str | None = None
    error: str | None = None

    @field_validator("message", "error", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> str | None:
        # Algunos endpoints mandan objetos en `error`; solo nos sirve texto.
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @property
    def error_text(self) -> str | None:
        return self.message or self.error


# --- Modelos de lectura (compartidos por datos en vivo y de respaldo) ---


class CattleStats(_WireModel):
    total_bovines: int = Field(default=0, ge=0)
    tracked_bovines: int = Field(default=0, ge=0)
    devices_online: int = Field(default=0, ge=0)
    active_alerts: int = Field(default=0, ge=0)
    with_location: int = Field(default=0, ge=0)
    last_update: datetime | None = None


class DashboardOverview(_WireModel):
    total_cattle: int = Field(default=0, ge=0)
    healthy_cattle: int = Field(default=0, ge=0)
    sick_cattle: int = Field(default=0, ge=0)
    pregnant_cows: int = Field(default=0, ge=0)
    pending_vaccinations: int = Field(default=0, ge=0)
    active_alerts: int = Field(default=0, ge=0)
    last_updated: datetime | None = None


class ProductionMetrics(_WireModel):
    daily_milk_liters: float = Field(default=0.0, ge=0.0)
    monthly_milk_liters: float = Field(default=0.0, ge=0.0)
    average_weight_kg: float = Field(default=0.0, ge=0.0)
    births_this_month: int = Field(default=0, ge=0)
    trend: list[float] = Field(default_factory=list)


class HealthMetrics(_WireModel):
    healthy: int = Field(default=0, ge=0)
    sick: int = Field(default=0, ge=0)
    in_treatment: int = Field(default=0, ge=0)
    quarantine: int = Field(default=0, ge=0)
    vaccination_coverage: float = Field(default=0.0, ge=0.0, le=100.0)


class Pasture(_WireModel):
    id: str
    name: str
    area_hectares: float = Field(default=0.0, ge=0.0)
    capacity: int = Field(default=0, ge=0)
    current_occupancy: int = Field(default=0, ge=0)
    center: GeoLocation | None = None
    boundary: list[tuple[float, float]] = Field(default_factory=list)


class Facility(_WireModel):
    id: str
    name: str
    type: str = "other"
    location: GeoLocation | None = None


class RanchBoundaries(_WireModel):
    ranch_id: str = ""
    polygon: list[tuple[float, float]] = Field(default_factory=list)
    area_hectares: float = Field(default=0.0, ge=0.0)


class RanchOverview(_WireModel):
    center: GeoLocation
    boundaries: RanchBoundaries | None = None
    potreros: list[Pasture] = Field(default_factory=list)
    ganado: list[TrackedEntity] = Field(default_factory=list)
    infraestructura: list[Facility] = Field(default_factory=list)


class CattleLocation(_WireModel):
    cattle_id: str
    ear_tag: str = ""
    location: GeoLocation
    health_status: str = "healthy"


class RanchProfile(_WireModel):
    id: str = ""
    name: str = ""
    owner: str | None = None
    address: str | None = None
    area_hectares: float = Field(default=0.0, ge=0.0)
    location: GeoLocation | None = None
    phone: str | None = None
    email: str | None = None
