"""Adaptador del motor en vivo (Leaflet).

Por qué un registro en memoria:
- El motor real corre en el navegador; aquí mantenemos el estado exacto de
  capas (vista, tiles, marcadores con popup) que el exportador HTML
  materializa como llamadas `L.map` / `L.tileLayer` / `L.marker`.
- El reconciliador es el único que escribe en la superficie.

Detección: los assets (JS+CSS) ya están cacheados en disco. Si no, `load()`
hace exactamente un intento de descarga; el reconciliador no reintenta.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from core.config import AppSettings
from core.interfaces.map_engine import MarkerSpec
from core.resources_loader import EngineAssets, download_engine_assets, engine_asset_paths


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileLayer:
    url: str
    attribution: str
    max_zoom: int


@dataclass
class LeafletMarker:
    spec: MarkerSpec
    popup: dict[str, Any] = field(default_factory=dict)


class LeafletSurface:
    kind = "live"

    def __init__(self, *, assets: EngineAssets, tile_layer: TileLayer) -> None:
        self.assets = assets
        self.tile_layer = tile_layer
        self.center: tuple[float, float] | None = None
        self.zoom: int | None = None
        self._layers: dict[int, LeafletMarker] = {}
        self._next_id = 0
        self.destroyed = False

    def set_view(self, center: tuple[float, float], zoom: int) -> None:
        self.center = center
        self.zoom = zoom

    def add_marker(self, spec: MarkerSpec) -> int:
        if self.destroyed:
            raise RuntimeError("map surface already destroyed")
        layer_id = self._next_id
        self._next_id += 1
        self._layers[layer_id] = LeafletMarker(spec=spec, popup=dict(spec.popup))
        return layer_id

    def remove_marker(self, handle: int) -> None:
        self._layers.pop(handle, None)

    def destroy(self) -> None:
        self._layers.clear()
        self.destroyed = True

    @property
    def markers(self) -> list[LeafletMarker]:
        return [self._layers[k] for k in sorted(self._layers)]

    def click(self, pin_id: str) -> bool:
        for marker in self._layers.values():
            if marker.spec.pin_id == pin_id and marker.spec.on_click is not None:
                marker.spec.on_click(pin_id)
                return True
        return False


class LeafletLoader:
    def __init__(
        self,
        settings: AppSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._assets = engine_asset_paths(settings)
        self.load_attempts = 0

    def is_available(self) -> bool:
        return self._assets.exist()

    async def load(self) -> None:
        self.load_attempts += 1
        timeout_s = self._settings.map_engine_load_timeout_ms / 1000.0
        try:
            self._assets = await asyncio.wait_for(
                download_engine_assets(self._settings, transport=self._transport),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"map engine did not load within {timeout_s:g}s") from exc

    def create_surface(self) -> LeafletSurface:
        settings = self._settings
        return LeafletSurface(
            assets=self._assets,
            tile_layer=TileLayer(
                url=settings.map_tile_url,
                attribution=settings.map_tile_attribution,
                max_zoom=settings.map_max_zoom,
            ),
        )
