"""Motores de mapa.

- `leaflet`: motor en vivo (assets descargados una vez, capas en memoria).
- `simulated`: cuadrícula determinista cuando el motor no está disponible.
"""

from adapters.map_engines.leaflet import LeafletLoader, LeafletSurface
from adapters.map_engines.simulated import SimulatedSurface, canvas_position, grid_cell

__all__ = [
    "LeafletLoader",
    "LeafletSurface",
    "SimulatedSurface",
    "canvas_position",
    "grid_cell",
]
