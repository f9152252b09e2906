"""Caché geoespacial de pines y reconciliación de marcadores.

El reconciliador es dueño de la caché de pines (`pin_id -> LocationPin`, en
orden de inserción) y de la superficie donde dibuja. Los pines se derivan
del `EntityStore`; nadie más se los entrega.

Reglas:
- Cada cambio en el conjunto de pines redibuja todo: se quitan los
  marcadores agregados antes y se agrega uno por pin vigente.
- El color depende de la antigüedad al momento de dibujar y nunca se cachea;
  basta `rerender()` para que los pines envejezcan.
- La superficie se elige una sola vez por vista en `mount()`. Si el motor ya
  está presente se usa; si no, el loader tiene un único intento y, si falla,
  queda la grilla simulada hasta que la vista desaparece.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Hashable, Protocol

from adapters.map_engines.simulated import SimulatedSurface
from core.domain.models import LocationPin, TrackedEntity, utc_now
from core.interfaces.map_engine import MapEngineLoader, MapSurface, MarkerSpec
from core.services.entity_store import EntityStore


logger = logging.getLogger(__name__)

AGE_PALETTE: tuple[tuple[timedelta, str], ...] = (
    (timedelta(hours=1), "#22c55e"),
    (timedelta(hours=6), "#3b82f6"),
    (timedelta(hours=24), "#f59e0b"),
)
STALE_COLOR = "#ef4444"
AGE_LABELS = ("<1h", "1-6h", "6-24h", ">=24h")


def age_bucket(age: timedelta) -> int:
    """Índice del bucket de antigüedad (edad negativa cuenta como reciente)."""

    for index, (limit, _) in enumerate(AGE_PALETTE):
        if age < limit:
            return index
    return len(AGE_PALETTE)


def color_for_age(age: timedelta) -> str:
    index = age_bucket(age)
    if index < len(AGE_PALETTE):
        return AGE_PALETTE[index][1]
    return STALE_COLOR


class PinSelection(Protocol):
    selected_pin_id: str | None

    def select_pin(self, pin_id: str | None) -> None:
        ...


class PinReconciler:
    def __init__(
        self,
        store: EntityStore,
        *,
        loader: MapEngineLoader | None = None,
        simulated_factory: Callable[[], MapSurface] = SimulatedSurface,
        selection: PinSelection | None = None,
        center: tuple[float, float] = (17.9889, -92.9303),
        default_zoom: int = 13,
        focus_zoom: int = 15,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._loader = loader
        self._simulated_factory = simulated_factory
        self._selection = selection
        self._center = center
        self._default_zoom = default_zoom
        self._focus_zoom = focus_zoom
        self._clock = clock

        self._pins: dict[str, LocationPin] = {}
        self._handles: dict[str, Hashable] = {}
        self._surface: MapSurface | None = None
        self._mode: str | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self.render_count = 0

    # --- estado ---

    @property
    def mode(self) -> str | None:
        """"live", "simulated" o None si aún no se montó."""

        return self._mode

    @property
    def surface(self) -> MapSurface | None:
        return self._surface

    @property
    def pins(self) -> list[LocationPin]:
        return list(self._pins.values())

    def pin(self, pin_id: str) -> LocationPin | None:
        return self._pins.get(pin_id)

    def slot_of(self, pin_id: str) -> int | None:
        for slot, key in enumerate(self._pins):
            if key == pin_id:
                return slot
        return None

    # --- ciclo de vida ---

    async def mount(self) -> str:
        if self._surface is not None:
            return self._mode or "simulated"

        self._surface = await self._select_surface()
        self._surface.set_view(self._center, self._default_zoom)
        self._unsubscribe = self._store.subscribe(self._on_entities)
        self._handles.clear()
        self.reconcile(self._store.entities(), force=True)
        return self._mode or "simulated"

    async def _select_surface(self) -> MapSurface:
        loader = self._loader
        if self._mode == "simulated" or loader is None:
            self._mode = "simulated"
            return self._simulated_factory()

        if loader.is_available():
            self._mode = "live"
            return loader.create_surface()

        try:
            await loader.load()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Map engine failed to load (%s); using simulated layout", exc)
            self._mode = "simulated"
            return self._simulated_factory()

        self._mode = "live"
        return loader.create_surface()

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        surface = self._surface
        if surface is not None:
            for handle in self._handles.values():
                surface.remove_marker(handle)
            surface.destroy()
        self._handles.clear()
        self._surface = None

    # --- reconciliación ---

    def _on_entities(self, entities: list[TrackedEntity]) -> None:
        self.reconcile(entities)

    def reconcile(
        self,
        entities: list[TrackedEntity] | None = None,
        *,
        force: bool = False,
    ) -> list[LocationPin]:
        """Recalcula pines desde las entidades y redibuja si cambió algo."""

        if entities is None:
            entities = self._store.entities()

        current: dict[str, LocationPin] = {}
        for entity in entities:
            pin = LocationPin.from_entity(entity)
            if pin is not None:
                current[pin.id] = pin

        # Los pines existentes conservan su posición; los nuevos van al final.
        ordered: dict[str, LocationPin] = {}
        for pin_id in self._pins:
            if pin_id in current:
                ordered[pin_id] = current[pin_id]
        for pin_id, pin in current.items():
            if pin_id not in ordered:
                ordered[pin_id] = pin

        changed = list(ordered.items()) != list(self._pins.items())
        self._pins = ordered

        if self._selection is not None:
            selected = self._selection.selected_pin_id
            if selected is not None and selected not in self._pins:
                self._selection.select_pin(None)

        if changed or force:
            if len(self._pins) == 1 and self._surface is not None:
                only = next(iter(self._pins.values()))
                self._surface.set_view(only.coordinate, self._focus_zoom)
            self._render()
        return self.pins

    def rerender(self) -> None:
        """Redibuja sin cambios de datos (refresca colores por antigüedad)."""

        self._render()

    def _render(self) -> None:
        surface = self._surface
        if surface is None:
            return

        for handle in self._handles.values():
            surface.remove_marker(handle)
        self._handles.clear()

        now = self._clock()
        for slot, pin in enumerate(self._pins.values()):
            age = now - pin.timestamp
            spec = MarkerSpec(
                pin_id=pin.id,
                position=pin.coordinate,
                color=color_for_age(age),
                slot=slot,
                label=str(pin.metadata.get("ear_tag") or pin.entity_ref),
                popup=self._popup(pin, age),
                on_click=self._handle_click,
            )
            self._handles[pin.id] = surface.add_marker(spec)
        self.render_count += 1

    def _popup(self, pin: LocationPin, age: timedelta) -> dict[str, object]:
        md = pin.metadata
        return {
            "ear_tag": md.get("ear_tag"),
            "name": md.get("name"),
            "breed": md.get("breed"),
            "health_status": md.get("health_status"),
            "accuracy_m": pin.accuracy,
            "last_seen": pin.timestamp.isoformat(timespec="seconds"),
            "age_bucket": AGE_LABELS[age_bucket(age)],
            "added_by": pin.added_by,
        }

    def _handle_click(self, pin_id: str) -> None:
        if self._selection is not None and pin_id in self._pins:
            self._selection.select_pin(pin_id)

    def color_of(self, pin_id: str) -> str | None:
        pin = self._pins.get(pin_id)
        if pin is None:
            return None
        return color_for_age(self._clock() - pin.timestamp)
