"""Estado de entidades de una vista de mapa.

El coordinador escribe aquí; el reconciliador solo lee y escucha. Cada
escritura reemplaza el `TrackedEntity` afectado (los modelos se tratan como
inmutables) y notifica a los listeners con la lista ordenada completa.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from core.domain.models import GeoLocation, TrackedEntity


logger = logging.getLogger(__name__)

EntityListener = Callable[[list[TrackedEntity]], None]


class EntityStore:
    def __init__(self, entities: Iterable[TrackedEntity] = ()) -> None:
        self._entities: dict[str, TrackedEntity] = {e.id: e for e in entities}
        self._listeners: list[EntityListener] = []

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def entities(self) -> list[TrackedEntity]:
        return list(self._entities.values())

    def get(self, entity_id: str) -> TrackedEntity | None:
        return self._entities.get(entity_id)

    def subscribe(self, listener: EntityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _changed(self) -> None:
        snapshot = self.entities()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Entity listener failed")

    def replace_all(self, entities: Iterable[TrackedEntity], *, keep_placeholders: bool = True) -> None:
        """Reemplazo completo (refresh). Conserva altas optimistas aún sin confirmar."""

        fresh = {e.id: e for e in entities}
        if keep_placeholders:
            for entity in self._entities.values():
                if entity.is_placeholder and entity.id not in fresh:
                    fresh[entity.id] = entity
        self._entities = fresh
        self._changed()

    def upsert(self, entity: TrackedEntity) -> None:
        self._entities[entity.id] = entity
        self._changed()

    def replace(self, old_id: str, entity: TrackedEntity) -> None:
        """Sustituye `old_id` por `entity` en la misma posición."""

        if old_id not in self._entities:
            self.upsert(entity)
            return
        rebuilt: dict[str, TrackedEntity] = {}
        for key, value in self._entities.items():
            if key == old_id:
                rebuilt[entity.id] = entity
            elif key != entity.id:
                rebuilt[key] = value
        self._entities = rebuilt
        self._changed()

    def remove(self, entity_id: str) -> TrackedEntity | None:
        removed = self._entities.pop(entity_id, None)
        if removed is not None:
            self._changed()
        return removed

    def set_location(
        self,
        entity_id: str,
        location: GeoLocation | None,
        *,
        monotonic: bool = False,
    ) -> bool:
        """Reemplaza la ubicación completa. Devuelve False si no se aplicó.

        Con `monotonic=True` se descarta una ubicación más antigua que la vigente.
        """

        entity = self._entities.get(entity_id)
        if entity is None:
            return False
        current = entity.location
        if (
            monotonic
            and location is not None
            and current is not None
            and location.timestamp < current.timestamp
        ):
            logger.info(
                "Discarding stale location for %s (%s < %s)",
                entity_id,
                location.timestamp.isoformat(),
                current.timestamp.isoformat(),
            )
            return False
        self._entities[entity_id] = entity.model_copy(update={"location": location})
        self._changed()
        return True
