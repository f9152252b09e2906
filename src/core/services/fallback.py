"""Proveedor de datos de respaldo.

`fetch_or_fallback` nunca lanza ante una lectura fallida: errores de
transporte, errores de aplicación, sobres `success: false` y payloads que no
cumplen el esquema de la operación devuelven el dataset estático de esa
operación, validado con el mismo esquema y marcado `"fallback"`. Los
consumidores solo miran `source` para mostrar el aviso de datos de demo.

La cancelación de la tarea sí se propaga. Una operación sin dataset
registrado es un error de programación y lanza `LookupError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Literal

from adapters.fallback_datasets import fallback_payload
from adapters.http_client import ResilientClient
from adapters.ranch_api import ReadOperation
from core.domain.errors import describe_error
from core.domain.models import utc_now


logger = logging.getLogger(__name__)

DataSource = Literal["live", "fallback"]
DatasetLookup = Callable[..., Any]


@dataclass(frozen=True)
class FetchResult:
    data: Any
    source: DataSource
    reason: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


class FallbackProvider:
    def __init__(
        self,
        client: ResilientClient,
        *,
        datasets: DatasetLookup = fallback_payload,
        prefer_fallback: Callable[[], bool] | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._datasets = datasets
        self._prefer_fallback = prefer_fallback
        self._now = now

    async def fetch_or_fallback(self, operation: ReadOperation) -> FetchResult:
        if self._prefer_fallback is not None and self._prefer_fallback():
            logger.debug("%s: backend reported down, serving fallback", operation.name)
            return self._fallback(operation, "backend unreachable")

        try:
            outcome = await self._client.execute(operation.request)
        except Exception as exc:
            logger.warning("%s: live read failed unexpectedly (%s), serving fallback", operation.name, exc)
            return self._fallback(operation, str(exc) or exc.__class__.__name__)
        if not outcome.ok:
            return self._fallback(operation, describe_error(outcome.error))

        try:
            data = operation.parse(outcome.payload)
        except Exception as exc:
            # Esquema inválido: mismo trato que un fallo de red.
            logger.warning("%s: live payload rejected (%s), serving fallback", operation.name, exc)
            return self._fallback(operation, exc.__class__.__name__)
        return FetchResult(data=data, source="live")

    def _fallback(self, operation: ReadOperation, reason: str) -> FetchResult:
        try:
            raw = self._datasets(operation.name, operation.params, now=self._now())
        except KeyError:
            raise LookupError(f"no fallback dataset for {operation.name!r}") from None
        logger.info("%s: using fallback dataset (%s)", operation.name, reason)
        return FetchResult(data=operation.parse(raw), source="fallback", reason=reason)
