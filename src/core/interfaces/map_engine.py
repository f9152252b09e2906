"""Contratos del motor de mapas.

Por qué Protocol:
- El reconciliador no sabe si dibuja sobre Leaflet o sobre la cuadrícula
  simulada; ambos cumplen `MapSurface`.
- El motor "en vivo" es externo y opcional: su detección/carga se abstrae
  en `MapEngineLoader` para poder sustituirla en pruebas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Protocol, runtime_checkable


@dataclass(frozen=True)
class MarkerSpec:
    """Todo lo necesario para dibujar un marcador.

    `position` es (lat, lng) en superficies geográficas; la superficie
    simulada la ignora y usa `slot` (orden de inserción).
    """

    pin_id: str
    position: tuple[float, float]
    color: str
    slot: int
    label: str = ""
    popup: dict[str, Any] = field(default_factory=dict)
    on_click: Callable[[str], None] | None = field(default=None, compare=False)


@runtime_checkable
class MapSurface(Protocol):
    """Capacidades mínimas de una superficie de mapa."""

    kind: str

    def set_view(self, center: tuple[float, float], zoom: int) -> None:
        ...

    def add_marker(self, spec: MarkerSpec) -> Hashable:
        """Dibuja un marcador y devuelve un handle opaco para removerlo."""

        ...

    def remove_marker(self, handle: Hashable) -> None:
        ...

    def destroy(self) -> None:
        ...


@runtime_checkable
class MapEngineLoader(Protocol):
    """Detecta o carga el motor en vivo y construye superficies."""

    def is_available(self) -> bool:
        """True si el motor ya está presente (sin I/O)."""

        ...

    async def load(self) -> None:
        """Un único intento de carga. Lanza si falla."""

        ...

    def create_surface(self) -> MapSurface:
        ...
