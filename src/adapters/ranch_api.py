"""Endpoints del backend del rancho.

Objetivo:
- Un único lugar con rutas, parámetros y forma de respuesta de cada endpoint.
- Las lecturas se describen como `ReadOperation` (petición + esquema) para
  que el proveedor de respaldo pueda validar datos en vivo y sustitutos con
  el mismo esquema.
- Las mutaciones devuelven el `RequestOutcome` crudo; el coordinador decide.

El backend envuelve casi todo en `data.<clave>` (`data.bovine`,
`data.stats`...); `_extract` tolera ambas formas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter

from adapters.http_client import RequestOutcome, RequestSpec, ResilientClient
from core.domain.models import (
    CattleLocation,
    CattleStats,
    DashboardOverview,
    GeoLocation,
    HealthMetrics,
    ProductionMetrics,
    RanchBoundaries,
    RanchOverview,
    RanchProfile,
    TrackedEntity,
    TrackingConfig,
)


PING_PATH = "/ping"


def _extract(payload: Any, keys: tuple[str, ...]) -> Any:
    if isinstance(payload, dict):
        for key in keys:
            if key in payload:
                return payload[key]
    return payload


@dataclass
class ReadOperation:
    """Lectura con nombre estable (clave del dataset de respaldo)."""

    name: str
    request: RequestSpec
    schema: Any
    extract_keys: tuple[str, ...] = ()
    params: dict[str, Any] = field(default_factory=dict)

    def parse(self, payload: Any) -> Any:
        """Valida `payload` contra el esquema; lanza `pydantic.ValidationError`."""

        return TypeAdapter(self.schema).validate_python(_extract(payload, self.extract_keys))


# --- Lecturas ---


def list_cattle() -> ReadOperation:
    return ReadOperation(
        name="cattle.list",
        request=RequestSpec("GET", "/cattle"),
        schema=list[TrackedEntity],
        extract_keys=("bovines", "cattle", "items"),
    )


def cattle_nearby(*, lat: float, lng: float, radius_m: float) -> ReadOperation:
    params = {"lat": lat, "lng": lng, "radius": radius_m}
    return ReadOperation(
        name="cattle.nearby",
        request=RequestSpec("GET", "/cattle/nearby", params=params),
        schema=list[TrackedEntity],
        extract_keys=("bovines", "cattle", "items"),
        params=params,
    )


def cattle_by_area(
    *,
    north_east: tuple[float, float],
    south_west: tuple[float, float],
) -> ReadOperation:
    params = {
        "ne_lat": north_east[0],
        "ne_lng": north_east[1],
        "sw_lat": south_west[0],
        "sw_lng": south_west[1],
    }
    return ReadOperation(
        name="cattle.by_area",
        request=RequestSpec("GET", "/cattle/by-area", params=params),
        schema=list[TrackedEntity],
        extract_keys=("bovines", "cattle", "items"),
        params=params,
    )


def cattle_stats() -> ReadOperation:
    return ReadOperation(
        name="cattle.stats",
        request=RequestSpec("GET", "/cattle/stats"),
        schema=CattleStats,
        extract_keys=("stats",),
    )


def ranch_overview(
    *,
    include_potreros: bool = True,
    include_ganado: bool = True,
    include_infraestructura: bool = True,
) -> ReadOperation:
    params = {
        "includePotreros": str(include_potreros).lower(),
        "includeGanado": str(include_ganado).lower(),
        "includeInfraestructura": str(include_infraestructura).lower(),
    }
    return ReadOperation(
        name="maps.ranch_overview",
        request=RequestSpec("GET", "/maps/ranch-overview", params=params),
        schema=RanchOverview,
        extract_keys=("overview",),
        params={
            "include_potreros": include_potreros,
            "include_ganado": include_ganado,
            "include_infraestructura": include_infraestructura,
        },
    )


def ranch_boundaries() -> ReadOperation:
    return ReadOperation(
        name="maps.ranch_boundaries",
        request=RequestSpec("GET", "/maps/ranch-boundaries"),
        schema=RanchBoundaries,
        extract_keys=("boundaries",),
    )


def cattle_locations() -> ReadOperation:
    return ReadOperation(
        name="maps.cattle_locations",
        request=RequestSpec("GET", "/maps/cattle-locations"),
        schema=list[CattleLocation],
        extract_keys=("locations",),
    )


def ranch_profile() -> ReadOperation:
    return ReadOperation(
        name="ranch.profile",
        request=RequestSpec("GET", "/ranch/profile"),
        schema=RanchProfile,
        extract_keys=("ranch", "profile"),
    )


def dashboard_overview() -> ReadOperation:
    return ReadOperation(
        name="dashboard.overview",
        request=RequestSpec("GET", "/dashboard/overview"),
        schema=DashboardOverview,
        extract_keys=("overview",),
    )


def production_metrics() -> ReadOperation:
    return ReadOperation(
        name="dashboard.production_metrics",
        request=RequestSpec("GET", "/dashboard/production-metrics"),
        schema=ProductionMetrics,
        extract_keys=("metrics",),
    )


def health_metrics() -> ReadOperation:
    return ReadOperation(
        name="dashboard.health_metrics",
        request=RequestSpec("GET", "/dashboard/health-metrics"),
        schema=HealthMetrics,
        extract_keys=("metrics",),
    )


READ_OPERATIONS = (
    "cattle.list",
    "cattle.nearby",
    "cattle.by_area",
    "cattle.stats",
    "maps.ranch_overview",
    "maps.ranch_boundaries",
    "maps.cattle_locations",
    "ranch.profile",
    "dashboard.overview",
    "dashboard.production_metrics",
    "dashboard.health_metrics",
)


# --- Mutaciones ---


def parse_entity(payload: Any) -> TrackedEntity | None:
    """Entidad devuelta por el servidor (`data.bovine` o el objeto directo)."""

    data = _extract(payload, ("bovine", "cattle", "entity"))
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return TrackedEntity.model_validate(data)


def parse_profile(payload: Any) -> RanchProfile | None:
    """Perfil devuelto tras un PUT (`data.ranch`); None si solo hubo acuse."""

    data = _extract(payload, ("ranch", "profile"))
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return RanchProfile.model_validate(data)


def location_body(location: GeoLocation, tracking: TrackingConfig) -> dict[str, Any]:
    return {"location": location.to_wire(), "trackingConfig": tracking.to_wire()}


async def ping(client: ResilientClient, *, timeout_ms: float | None = None) -> RequestOutcome:
    return await client.execute(RequestSpec("GET", PING_PATH, timeout_ms=timeout_ms))


async def create_cattle(client: ResilientClient, body: dict[str, Any]) -> RequestOutcome:
    return await client.execute(RequestSpec("POST", "/cattle", json=body))


async def update_cattle(client: ResilientClient, entity_id: str, body: dict[str, Any]) -> RequestOutcome:
    return await client.execute(RequestSpec("PUT", f"/cattle/{entity_id}", json=body))


async def delete_cattle(client: ResilientClient, entity_id: str) -> RequestOutcome:
    return await client.execute(RequestSpec("DELETE", f"/cattle/{entity_id}"))


async def update_cattle_location(
    client: ResilientClient,
    entity_id: str,
    *,
    location: GeoLocation,
    tracking: TrackingConfig,
) -> RequestOutcome:
    return await client.execute(
        RequestSpec("PUT", f"/cattle/{entity_id}/location", json=location_body(location, tracking))
    )


async def update_ranch_profile(client: ResilientClient, profile: RanchProfile) -> RequestOutcome:
    return await client.execute(RequestSpec("PUT", "/ranch/profile", json=profile.to_wire()))
