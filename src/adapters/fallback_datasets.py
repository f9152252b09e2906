"""Datasets de respaldo (modo demo/offline).

Por qué aquí:
- Son datos estáticos de infraestructura, no reglas del dominio.
- Cada dataset tiene exactamente la forma que devuelve el endpoint en vivo
  (mismas claves camelCase, mismo anidamiento) y se valida con el mismo
  esquema en `core.services.fallback`.

Las coordenadas corresponden al rancho de referencia en Villahermosa, Tabasco.
Los timestamps se expresan como desfases respecto de `now` para que los pines
de demostración no aparezcan todos "viejos".
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

from core.domain.geo import in_bounds, within_radius
from core.domain.models import utc_now


RANCH_CENTER = (17.9869, -92.9303)

# (id, earTag, name, breed, cattleType, sex, age, weight, health, lat, lng, minutos)
_HERD: tuple[tuple[Any, ...], ...] = (
    ("demo-001", "MX-001", "Esperanza", "Holstein", "cow", "female", 4, 520, "healthy", 17.9889, -92.9303, 12),
    ("demo-002", "MX-002", "Tornado", "Brahman", "bull", "male", 5, 780, "healthy", 17.9875, -92.9298, 95),
    ("demo-003", "MX-003", "Luna", "Jersey", "cow", "female", 3, 410, "sick", 17.9863, -92.9308, 420),
    ("demo-004", "MX-004", "Canela", "Gyr", "heifer", "female", 2, 350, "recovery", 17.9871, -92.9295, 900),
    ("demo-005", "MX-005", "Chispa", "Angus", "calf", "male", 1, 140, "healthy", 17.9880, -92.9320, 2000),
)

_PASTURES: tuple[dict[str, Any], ...] = (
    {
        "id": "p1",
        "name": "Potrero Norte",
        "areaHectares": 25.5,
        "capacity": 40,
        "currentOccupancy": 32,
        "center": {"latitude": 17.9895, "longitude": -92.9310, "source": "ESTIMATED"},
        "boundary": [[17.9905, -92.9325], [17.9905, -92.9295], [17.9885, -92.9295], [17.9885, -92.9325]],
    },
    {
        "id": "p2",
        "name": "Potrero Sur",
        "areaHectares": 18.0,
        "capacity": 30,
        "currentOccupancy": 12,
        "center": {"latitude": 17.9845, "longitude": -92.9300, "source": "ESTIMATED"},
        "boundary": [[17.9855, -92.9315], [17.9855, -92.9285], [17.9835, -92.9285], [17.9835, -92.9315]],
    },
)

_FACILITIES: tuple[dict[str, Any], ...] = (
    {"id": "f1", "name": "Corral Principal", "type": "corral", "location": {"latitude": 17.9869, "longitude": -92.9303}},
    {"id": "f2", "name": "Establo Norte", "type": "barn", "location": {"latitude": 17.9875, "longitude": -92.9298}},
    {"id": "f3", "name": "Área de Alimentación", "type": "feed", "location": {"latitude": 17.9863, "longitude": -92.9308}},
    {"id": "f4", "name": "Clínica Veterinaria", "type": "medical", "location": {"latitude": 17.9871, "longitude": -92.9295}},
)

_BOUNDARY = [[17.9910, -92.9340], [17.9910, -92.9270], [17.9830, -92.9270], [17.9830, -92.9340]]


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def _herd(now: datetime) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for (eid, tag, name, breed, ctype, sex, age, weight, health, lat, lng, minutes) in _HERD:
        out.append(
            {
                "id": eid,
                "kind": "cattle",
                "earTag": tag,
                "name": name,
                "breed": breed,
                "cattleType": ctype,
                "sex": sex,
                "age": age,
                "weight": weight,
                "healthStatus": health,
                "location": {
                    "latitude": lat,
                    "longitude": lng,
                    "accuracy": 5,
                    "timestamp": _iso(now - timedelta(minutes=minutes)),
                    "source": "GPS",
                },
            }
        )
    return out


def _coordinate(item: dict[str, Any]) -> tuple[float, float]:
    loc = item["location"]
    return (loc["latitude"], loc["longitude"])


def _cattle_list(now: datetime, params: dict[str, Any]) -> Any:
    return _herd(now)


def _cattle_nearby(now: datetime, params: dict[str, Any]) -> Any:
    center = (float(params.get("lat", RANCH_CENTER[0])), float(params.get("lng", RANCH_CENTER[1])))
    radius = float(params.get("radius", 1000))
    return [c for c in _herd(now) if within_radius(center, _coordinate(c), radius)]


def _cattle_by_area(now: datetime, params: dict[str, Any]) -> Any:
    ne = (float(params["ne_lat"]), float(params["ne_lng"]))
    sw = (float(params["sw_lat"]), float(params["sw_lng"]))
    return [c for c in _herd(now) if in_bounds(_coordinate(c), north_east=ne, south_west=sw)]


def _cattle_stats(now: datetime, params: dict[str, Any]) -> Any:
    herd = _herd(now)
    return {
        "totalBovines": len(herd),
        "trackedBovines": len(herd),
        "devicesOnline": len(herd) - 1,
        "activeAlerts": sum(1 for c in herd if c["healthStatus"] != "healthy"),
        "withLocation": len(herd),
        "lastUpdate": _iso(now),
    }


def _ranch_overview(now: datetime, params: dict[str, Any]) -> Any:
    return {
        "center": {"latitude": RANCH_CENTER[0], "longitude": RANCH_CENTER[1], "source": "ESTIMATED", "timestamp": _iso(now)},
        "boundaries": _ranch_boundaries(now, params),
        "potreros": list(_PASTURES) if params.get("include_potreros", True) else [],
        "ganado": _herd(now) if params.get("include_ganado", True) else [],
        "infraestructura": list(_FACILITIES) if params.get("include_infraestructura", True) else [],
    }


def _ranch_boundaries(now: datetime, params: dict[str, Any]) -> Any:
    return {"ranchId": "demo-ranch", "polygon": _BOUNDARY, "areaHectares": 62.0}


def _cattle_locations(now: datetime, params: dict[str, Any]) -> Any:
    return [
        {
            "cattleId": c["id"],
            "earTag": c["earTag"],
            "location": c["location"],
            "healthStatus": c["healthStatus"],
        }
        for c in _herd(now)
    ]


def _ranch_profile(now: datetime, params: dict[str, Any]) -> Any:
    return {
        "id": "demo-ranch",
        "name": "Rancho Demo",
        "owner": "Demo",
        "address": "Villahermosa, Tabasco, México",
        "areaHectares": 62.0,
        "location": {"latitude": RANCH_CENTER[0], "longitude": RANCH_CENTER[1], "source": "ESTIMATED", "timestamp": _iso(now)},
    }


def _dashboard_overview(now: datetime, params: dict[str, Any]) -> Any:
    herd = _herd(now)
    sick = sum(1 for c in herd if c["healthStatus"] != "healthy")
    return {
        "totalCattle": len(herd),
        "healthyCattle": len(herd) - sick,
        "sickCattle": sick,
        "pregnantCows": 1,
        "pendingVaccinations": 2,
        "activeAlerts": sick,
        "lastUpdated": _iso(now),
    }


def _production_metrics(now: datetime, params: dict[str, Any]) -> Any:
    return {
        "dailyMilkLiters": 64.5,
        "monthlyMilkLiters": 1935.0,
        "averageWeightKg": 440.0,
        "birthsThisMonth": 1,
        "trend": [58.0, 61.5, 60.0, 63.2, 64.5],
    }


def _health_metrics(now: datetime, params: dict[str, Any]) -> Any:
    return {"healthy": 3, "sick": 1, "inTreatment": 1, "quarantine": 0, "vaccinationCoverage": 80.0}


_BUILDERS: dict[str, Callable[[datetime, dict[str, Any]], Any]] = {
    "cattle.list": _cattle_list,
    "cattle.nearby": _cattle_nearby,
    "cattle.by_area": _cattle_by_area,
    "cattle.stats": _cattle_stats,
    "maps.ranch_overview": _ranch_overview,
    "maps.ranch_boundaries": _ranch_boundaries,
    "maps.cattle_locations": _cattle_locations,
    "ranch.profile": _ranch_profile,
    "dashboard.overview": _dashboard_overview,
    "dashboard.production_metrics": _production_metrics,
    "dashboard.health_metrics": _health_metrics,
}


def available_datasets() -> tuple[str, ...]:
    return tuple(_BUILDERS)


def fallback_payload(name: str, params: dict[str, Any] | None = None, *, now: datetime | None = None) -> Any:
    """Payload sustituto (forma de wire) para la operación `name`.

    Lanza `KeyError` si no existe dataset para esa operación.
    """

    builder = _BUILDERS[name]
    return builder(now or utc_now(), dict(params or {}))
