"""Superficie de mapa simulada.

Sin motor real, el pin N (orden de inserción, base 0) cae en la celda
`(N % 7, N // 7)` de un lienzo virtual fijo. Las coordenadas geográficas se
ignoran: la posición solo depende del orden.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.interfaces.map_engine import MarkerSpec


GRID_COLUMNS = 7
ORIGIN_PCT = 15.0
COLUMN_STEP_PCT = 12.0
ROW_STEP_PCT = 15.0


def grid_cell(slot: int) -> tuple[int, int]:
    """(columna, fila) del pin en la posición `slot`."""

    return (slot % GRID_COLUMNS, slot // GRID_COLUMNS)


def canvas_position(cell: tuple[int, int]) -> tuple[float, float]:
    """(left %, top %) de una celda sobre el lienzo."""

    column, row = cell
    return (ORIGIN_PCT + column * COLUMN_STEP_PCT, ORIGIN_PCT + row * ROW_STEP_PCT)


@dataclass(frozen=True)
class SimulatedMarker:
    spec: MarkerSpec
    cell: tuple[int, int]
    left_pct: float
    top_pct: float


class SimulatedSurface:
    kind = "simulated"

    def __init__(self) -> None:
        self._markers: dict[int, SimulatedMarker] = {}
        self._next_handle = 0
        self.center: tuple[float, float] | None = None
        self.zoom: int | None = None
        self.destroyed = False

    def set_view(self, center: tuple[float, float], zoom: int) -> None:
        self.center = center
        self.zoom = zoom

    def add_marker(self, spec: MarkerSpec) -> int:
        cell = grid_cell(spec.slot)
        left, top = canvas_position(cell)
        handle = self._next_handle
        self._next_handle += 1
        self._markers[handle] = SimulatedMarker(spec=spec, cell=cell, left_pct=left, top_pct=top)
        return handle

    def remove_marker(self, handle: int) -> None:
        self._markers.pop(handle, None)

    def destroy(self) -> None:
        self._markers.clear()
        self.destroyed = True

    @property
    def markers(self) -> list[SimulatedMarker]:
        return sorted(self._markers.values(), key=lambda m: m.spec.slot)

    def cells(self) -> list[tuple[int, int]]:
        return [m.cell for m in self.markers]

    def click(self, pin_id: str) -> bool:
        for marker in self._markers.values():
            if marker.spec.pin_id == pin_id and marker.spec.on_click is not None:
                marker.spec.on_click(pin_id)
                return True
        return False
