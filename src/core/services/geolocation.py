"""Obtención de la posición actual como un único `await`.

`acquire()` devuelve un `GeolocationResult` con la lectura o el motivo del
fallo; nunca lanza por problemas del sensor. Una lectura en caché solo se
reutiliza si su propio `timestamp` es más reciente que `max_cache_age_ms`;
si no, se lee de nuevo con `timeout_ms` como límite. Cancelar la tarea que
espera cancela la lectura.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from core.config import AppSettings
from core.domain.models import GeoLocation, utc_now
from core.interfaces.sensors import GeolocationSensor, PositionError, PositionFailure


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeolocationResult:
    location: GeoLocation | None = None
    failure: PositionFailure | None = None
    detail: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.location is not None


class GeolocationService:
    def __init__(
        self,
        sensor: GeolocationSensor | None,
        *,
        timeout_ms: float = 10_000,
        max_cache_age_ms: float = 60_000,
        high_accuracy: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sensor = sensor
        self.timeout_ms = timeout_ms
        self.max_cache_age_ms = max_cache_age_ms
        self.high_accuracy = high_accuracy
        self._clock = clock
        self._cached: GeoLocation | None = None

    @classmethod
    def from_settings(cls, settings: AppSettings, sensor: GeolocationSensor | None) -> "GeolocationService":
        return cls(
            sensor,
            timeout_ms=settings.geolocation_timeout_ms,
            max_cache_age_ms=settings.geolocation_max_cache_age_ms,
        )

    @property
    def last_fix(self) -> GeoLocation | None:
        return self._cached

    async def acquire(
        self,
        *,
        timeout_ms: float | None = None,
        max_cache_age_ms: float | None = None,
    ) -> GeolocationResult:
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        max_age_ms = self.max_cache_age_ms if max_cache_age_ms is None else max_cache_age_ms

        if self._sensor is None:
            return GeolocationResult(failure=PositionFailure.UNSUPPORTED, detail="no position sensor configured")

        now = self._clock()
        if (
            self._cached is not None
            and now - self._cached.timestamp < timedelta(milliseconds=max_age_ms)
        ):
            return GeolocationResult(location=self._cached, from_cache=True)

        try:
            location = await asyncio.wait_for(
                self._sensor.read_position(high_accuracy=self.high_accuracy),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            logger.info("Position fix timed out after %.0f ms", timeout_ms)
            return GeolocationResult(failure=PositionFailure.TIMEOUT, detail=f"no fix within {timeout_ms:g} ms")
        except PositionError as exc:
            logger.info("Position fix failed: %s", exc.reason.value)
            return GeolocationResult(failure=exc.reason, detail=str(exc))

        self._cached = location
        return GeolocationResult(location=location)
