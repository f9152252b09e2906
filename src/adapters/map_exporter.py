"""Exportación del mapa a HTML.

Por qué está en adapters:
- HTML/Jinja2 es detalle de infraestructura.
- El Core solo conoce la superficie (`LeafletSurface` o `SimulatedSurface`)
  que el reconciliador dejó dibujada; aquí se materializa tal cual.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from adapters.map_engines.leaflet import LeafletSurface
from adapters.map_engines.simulated import SimulatedSurface
from core.interfaces.map_engine import MapSurface


_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def _get_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )


def render_map_html(
    *,
    surface: MapSurface,
    title: str = "Ranch map",
    offline: bool = False,
    engine_js_url: str | None = None,
    engine_css_url: str | None = None,
) -> str:
    """Renderiza un HTML autocontenido con los marcadores actuales."""

    generated_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    env = _get_env()

    if isinstance(surface, LeafletSurface):
        template = env.get_template("map_live.html")
        markers = [
            {
                "pin_id": m.spec.pin_id,
                "lat": m.spec.position[0],
                "lng": m.spec.position[1],
                "color": m.spec.color,
                "label": m.spec.label,
                "popup": m.popup,
            }
            for m in surface.markers
        ]
        center = surface.center
        if center is None and markers:
            center = (markers[0]["lat"], markers[0]["lng"])
        return template.render(
            title=title,
            generated_at=generated_at,
            offline=offline,
            engine_js_url=engine_js_url,
            engine_css_url=engine_css_url,
            tile=surface.tile_layer,
            center=center or (0.0, 0.0),
            zoom=surface.zoom or surface.tile_layer.max_zoom,
            markers=markers,
        )

    if isinstance(surface, SimulatedSurface):
        template = env.get_template("map_simulated.html")
        return template.render(
            title=title,
            generated_at=generated_at,
            offline=offline,
            markers=surface.markers,
        )

    raise TypeError(f"unsupported map surface: {type(surface).__name__}")


def export_map_html(*, surface: MapSurface, output_path: Path, **kwargs: object) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    html = render_map_html(surface=surface, **kwargs)  # type: ignore[arg-type]
    output_path.write_text(html, encoding="utf-8")
    return output_path
