"""Coordinador CRUD optimista del ganado rastreado.

Alta y edición se aplican al `EntityStore` antes de que responda el servidor;
cada una registra una acción compensatoria que se ejecuta si la llamada
falla, y luego se relanza el error. El borrado nunca es optimista: exige una
confirmación explícita y solo toca el estado local tras el acuse del servidor.

Reglas:
- Una mutación a la vez por coordinador (uno por vista); otra mientras
  `submitting` lanza `MutationInFlight` sin tocar la red.
- Mientras el listado proviene del respaldo (`last_source == "fallback"`)
  las entidades son de demostración: toda mutación lanza `OfflineReadOnly`.

Orden de ubicaciones:
- "monotonic": una ubicación con timestamp más antiguo que la vigente se
  rechaza antes de enviarse, y una respuesta que resuelve tarde con una
  lectura más vieja se descarta.
- "last_resolved": gana la que resuelve al final.
"""

from __future__ import annotations

import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Literal, Mapping

from pydantic import ValidationError as PydanticValidationError

from adapters import ranch_api
from adapters.http_client import ResilientClient
from core.domain.errors import (
    ConfirmationAborted,
    MutationInFlight,
    OfflineReadOnly,
    ValidationError,
)
from core.domain.geo import is_valid_coordinate
from core.domain.models import (
    GeoLocation,
    TrackedEntity,
    TrackingConfig,
    RanchProfile,
    new_placeholder_id,
)
from core.services.entity_store import EntityStore
from core.services.fallback import FallbackProvider, FetchResult


logger = logging.getLogger(__name__)

LocationOrdering = Literal["monotonic", "last_resolved"]
Confirmation = Callable[[TrackedEntity], "bool | Awaitable[bool]"]

_SEXES = {"male", "female"}
_REQUIRED_TEXT = ("ear_tag", "breed")
_WIRE_TO_FIELD = {"earTag": "ear_tag", "healthStatus": "health_status", "cattleType": "cattle_type"}


def _normalize(data: Mapping[str, Any]) -> dict[str, Any]:
    return {_WIRE_TO_FIELD.get(k, k): v for k, v in data.items()}


def validate_new_cattle(data: Mapping[str, Any]) -> dict[str, str]:
    """Errores por campo para un alta; vacío si es válida."""

    fields = _normalize(data)
    errors: dict[str, str] = {}
    for name in _REQUIRED_TEXT:
        value = fields.get(name)
        if not isinstance(value, str) or not value.strip():
            errors[name] = "required"

    age = fields.get("age")
    if isinstance(age, bool) or not isinstance(age, (int, float)):
        errors["age"] = "required"
    elif age <= 0:
        errors["age"] = "must be greater than 0"

    sex = fields.get("sex")
    if not isinstance(sex, str) or sex.strip().lower() not in _SEXES:
        errors["sex"] = "must be 'male' or 'female'"

    weight = fields.get("weight")
    if weight is not None and (isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0):
        errors["weight"] = "must be a positive number"
    return errors


def _pydantic_fields(exc: PydanticValidationError) -> dict[str, str]:
    out: dict[str, str] = {}
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "value"
        out[loc] = err.get("msg", "invalid")
    return out


async def edit_ranch_profile(client: ResilientClient, changes: Mapping[str, Any]) -> RanchProfile:
    """Aplica `changes` sobre el perfil vivo y lo reenvía completo (PUT).

    Por qué no usa el respaldo: el perfil de demostración no debe terminar
    guardado en el servidor; sin conexión el error de transporte se propaga.
    """

    operation = ranch_api.ranch_profile()
    current = operation.parse((await client.execute(operation.request)).unwrap())
    fields = {k: v for k, v in changes.items() if k not in ("id", "location")}
    try:
        updated = RanchProfile.model_validate({**current.model_dump(), **fields})
    except PydanticValidationError as exc:
        raise ValidationError(_pydantic_fields(exc)) from exc

    payload = (await ranch_api.update_ranch_profile(client, updated)).unwrap()
    logger.info("Updated ranch profile %s", updated.id or updated.name)
    return ranch_api.parse_profile(payload) or updated


class CattleCoordinator:
    def __init__(
        self,
        client: ResilientClient,
        store: EntityStore,
        *,
        fallback: FallbackProvider | None = None,
        location_ordering: LocationOrdering = "monotonic",
        confirm: Confirmation | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._fallback = fallback
        self.location_ordering = location_ordering
        self._confirm = confirm
        self._submitting = False
        self.selected_pin_id: str | None = None
        self.last_source: str | None = None

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def submitting(self) -> bool:
        return self._submitting

    # --- selección ---

    def select_pin(self, pin_id: str | None) -> None:
        self.selected_pin_id = pin_id

    def clear_selection(self) -> None:
        self.selected_pin_id = None

    # --- lectura ---

    async def load(self) -> FetchResult:
        """Refresca el listado completo (last-write-wins)."""

        operation = ranch_api.list_cattle()
        if self._fallback is not None:
            result = await self._fallback.fetch_or_fallback(operation)
        else:
            outcome = await self._client.execute(operation.request)
            result = FetchResult(data=operation.parse(outcome.unwrap()), source="live")
        self._store.replace_all(result.data)
        self.last_source = result.source
        logger.debug("Loaded %d entities (%s)", len(result.data), result.source)
        return result

    # --- mutaciones ---

    @asynccontextmanager
    async def _mutation(self, what: str) -> AsyncIterator[None]:
        if self._submitting:
            raise MutationInFlight(f"cannot {what} while another change is in flight")
        self._submitting = True
        try:
            yield
        finally:
            self._submitting = False

    def _guard(self, what: str) -> None:
        if self._submitting:
            raise MutationInFlight(f"cannot {what} while another change is in flight")
        if self.last_source == "fallback":
            raise OfflineReadOnly(what)

    def _require(self, entity_id: str) -> TrackedEntity:
        entity = self._store.get(entity_id)
        if entity is None:
            raise ValidationError({"id": f"unknown entity {entity_id!r}"})
        return entity

    async def create(self, data: Mapping[str, Any]) -> TrackedEntity:
        self._guard("create")

        errors = validate_new_cattle(data)
        if errors:
            raise ValidationError(errors)

        fields = _normalize(data)
        fields["sex"] = str(fields["sex"]).strip().lower()
        fields.pop("id", None)
        try:
            placeholder = TrackedEntity.model_validate({**fields, "id": new_placeholder_id()})
        except PydanticValidationError as exc:
            raise ValidationError(_pydantic_fields(exc)) from exc

        async with self._mutation("create"):
            self._store.upsert(placeholder)
            body = placeholder.to_wire()
            body.pop("id", None)
            try:
                outcome = await ranch_api.create_cattle(self._client, body)
                payload = outcome.unwrap()
            except BaseException:
                # Compensación: el alta especulativa desaparece.
                self._store.remove(placeholder.id)
                raise

            created = ranch_api.parse_entity(payload)
            if created is None:
                logger.warning("Create acknowledged without an entity; keeping local placeholder %s", placeholder.id)
                return placeholder
            self._store.replace(placeholder.id, created)
            logger.info("Created %s (%s)", created.id, created.ear_tag)
            return created

    async def update_location(
        self,
        entity_id: str,
        location: GeoLocation,
        tracking: TrackingConfig | None = None,
    ) -> TrackedEntity:
        self._guard("update location")

        entity = self._require(entity_id)
        if entity.is_placeholder:
            raise ValidationError({"id": "entity is not confirmed by the server yet"})
        if not is_valid_coordinate(location.latitude, location.longitude):
            raise ValidationError({"location": "coordinate out of range"})

        tracking = tracking or TrackingConfig()
        monotonic = self.location_ordering == "monotonic"
        previous = entity.location
        if monotonic and previous is not None and location.timestamp < previous.timestamp:
            raise ValidationError(
                {"location": f"reading from {location.timestamp.isoformat()} is older than the applied one"}
            )

        async with self._mutation("update location"):
            self._store.set_location(entity_id, location)
            try:
                outcome = await ranch_api.update_cattle_location(
                    self._client, entity_id, location=location, tracking=tracking
                )
                payload = outcome.unwrap()
            except BaseException:
                current = self._store.get(entity_id)
                if current is not None and current.location == location:
                    self._store.set_location(entity_id, previous)
                raise

            confirmed = ranch_api.parse_entity(payload)
            applied = confirmed.location if confirmed is not None and confirmed.location else location
            self._store.set_location(entity_id, applied, monotonic=monotonic)
            return self._store.get(entity_id) or entity

    async def update_fields(self, entity_id: str, changes: Mapping[str, Any]) -> TrackedEntity:
        """Edición de campos de dominio (no ubicación)."""

        self._guard("update")

        entity = self._require(entity_id)
        if entity.is_placeholder:
            raise ValidationError({"id": "entity is not confirmed by the server yet"})
        fields = _normalize(changes)
        for blocked in ("id", "location"):
            fields.pop(blocked, None)
        try:
            updated = TrackedEntity.model_validate({**entity.model_dump(), **fields})
        except PydanticValidationError as exc:
            raise ValidationError(_pydantic_fields(exc)) from exc

        async with self._mutation("update"):
            self._store.upsert(updated)
            body = updated.to_wire()
            for key in ("id", "location"):
                body.pop(key, None)
            try:
                payload = (await ranch_api.update_cattle(self._client, entity_id, body)).unwrap()
            except BaseException:
                if self._store.get(entity_id) == updated:
                    self._store.upsert(entity)
                raise

            confirmed = ranch_api.parse_entity(payload)
            if confirmed is not None:
                if confirmed.location is None:
                    confirmed = confirmed.model_copy(update={"location": updated.location})
                self._store.upsert(confirmed)
                return confirmed
            return updated

    async def delete(self, entity_id: str, *, confirm: Confirmation | None = None) -> None:
        self._guard("delete")

        entity = self._require(entity_id)
        confirm = confirm or self._confirm
        if confirm is None:
            raise ConfirmationAborted("delete requires an explicit confirmation")
        answer = confirm(entity)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            raise ConfirmationAborted(f"delete of {entity.ear_tag or entity_id} declined")

        async with self._mutation("delete"):
            if entity.is_placeholder:
                self._store.remove(entity_id)
                return
            outcome = await ranch_api.delete_cattle(self._client, entity_id)
            outcome.unwrap()
            self._store.remove(entity_id)
            logger.info("Deleted %s", entity_id)
