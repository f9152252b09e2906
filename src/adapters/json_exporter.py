"""Exportación JSON de pines.

Por qué GeoJSON:
- Interoperabilidad con SIG (QGIS, geojson.io) y otras herramientas del rancho.
- Permite guardar una instantánea de la proyección sin depender del HTML.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from core.domain.models import LocationPin


def pins_to_geojson(pins: Iterable[LocationPin], *, colors: dict[str, str] | None = None) -> dict[str, Any]:
    """FeatureCollection con un Point por pin (GeoJSON usa [lng, lat])."""

    features = []
    for pin in pins:
        lat, lng = pin.coordinate
        properties: dict[str, Any] = {
            "pinId": pin.id,
            "entityId": pin.entity_ref,
            "accuracy": pin.accuracy,
            "timestamp": pin.timestamp.isoformat(timespec="seconds"),
            "addedBy": pin.added_by,
            **{k: v for k, v in pin.metadata.items() if v is not None},
        }
        if colors and pin.id in colors:
            properties["color"] = colors[pin.id]
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [lng, lat]},
                "properties": properties,
            }
        )
    return {"type": "FeatureCollection", "features": features}


def export_pins_json(*, pins: Iterable[LocationPin], output_path: Path, colors: dict[str, str] | None = None) -> Path:
    """Exporta pines a GeoJSON UTF-8 con formato estable."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = pins_to_geojson(pins, colors=colors)
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path
