"""Contrato de sensores de posición.

Un sensor entrega una lectura fresca o lanza `PositionError` con el motivo.
La política de caché/timeout vive en `core.services.geolocation`.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from core.domain.models import GeoLocation


class PositionFailure(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


class PositionError(Exception):
    def __init__(self, reason: PositionFailure, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason


@runtime_checkable
class GeolocationSensor(Protocol):
    async def read_position(self, *, high_accuracy: bool = True) -> GeoLocation:
        ...
