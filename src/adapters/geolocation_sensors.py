"""Sensores de posición concretos.

- `FixedPositionSensor`: posición configurada (estación fija del rancho, CLI).
- `CallbackSensor`: puente entre una API de callbacks (éxito/error) y un
  `await`; cada lectura crea su propio future.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

from core.domain.models import GeoLocation, LocationSource, utc_now
from core.interfaces.sensors import PositionError, PositionFailure


class FixedPositionSensor:
    def __init__(
        self,
        latitude: float,
        longitude: float,
        *,
        accuracy: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy = accuracy
        self._clock = clock
        self.reads = 0

    async def read_position(self, *, high_accuracy: bool = True) -> GeoLocation:
        self.reads += 1
        return GeoLocation(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy=self.accuracy,
            timestamp=self._clock(),
            source=LocationSource.GPS,
        )


SuccessCallback = Callable[[GeoLocation], None]
ErrorCallback = Callable[[PositionFailure, str], None]
Requester = Callable[[SuccessCallback, ErrorCallback, bool], None]


class CallbackSensor:
    """Adapta `request(on_success, on_error, high_accuracy)` a una corrutina.

    El callback puede llegar desde otro hilo; se reenvía al loop con
    `call_soon_threadsafe`. Callbacks tardíos tras cancelación se ignoran.
    """

    def __init__(self, request: Requester) -> None:
        self._request = request

    async def read_position(self, *, high_accuracy: bool = True) -> GeoLocation:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[GeoLocation] = loop.create_future()

        def _resolve(location: GeoLocation) -> None:
            if not future.done():
                future.set_result(location)

        def _reject(reason: PositionFailure, detail: str) -> None:
            if not future.done():
                future.set_exception(PositionError(reason, detail))

        def on_success(location: GeoLocation) -> None:
            loop.call_soon_threadsafe(_resolve, location)

        def on_error(reason: PositionFailure, detail: str = "") -> None:
            loop.call_soon_threadsafe(_reject, reason, detail)

        self._request(on_success, on_error, high_accuracy)
        return await future
