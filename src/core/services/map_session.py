"""Raíz de composición de una vista de mapa.

Construye todos los componentes a partir de un único `AppSettings` explícito
y es dueña de su ciclo de vida:

    client -> monitor, fallback -> coordinator -> store -> reconciler

`mount()` elige la superficie del mapa, arranca el monitor de salud, carga
las entidades y lanza el sondeo periódico. `unmount()` desmonta todo en orden
inverso y limpia la selección; después no se dispara ningún ping ni sondeo.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from adapters.credential_store import FileCredentialStore
from adapters.http_client import ResilientClient
from adapters.map_engines.leaflet import LeafletLoader
from core.config import AppSettings
from core.domain.models import TrackedEntity, TrackingConfig
from core.interfaces.credentials import CredentialSource
from core.interfaces.map_engine import MapEngineLoader
from core.interfaces.sensors import GeolocationSensor
from core.services.coordinator import CattleCoordinator, Confirmation
from core.services.entity_store import EntityStore
from core.services.fallback import FallbackProvider, FetchResult
from core.services.geolocation import GeolocationResult, GeolocationService
from core.services.health_monitor import ConnectionMonitor
from core.services.reconciler import PinReconciler


logger = logging.getLogger(__name__)


class MapSession:
    def __init__(
        self,
        settings: AppSettings,
        *,
        credentials: CredentialSource | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        loader: MapEngineLoader | None = None,
        use_live_engine: bool = True,
        confirm: Confirmation | None = None,
        sensor: GeolocationSensor | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._sleep = sleep
        self.credentials = credentials or FileCredentialStore.from_settings(settings)
        self.client = ResilientClient(settings, credentials=self.credentials, transport=transport)
        self.monitor = ConnectionMonitor.from_settings(settings, self.client)
        self.fallback = FallbackProvider(
            self.client,
            prefer_fallback=self.monitor.prefers_fallback if settings.prefer_fallback_when_offline else None,
        )
        self.store = EntityStore()
        self.coordinator = CattleCoordinator(
            self.client,
            self.store,
            fallback=self.fallback,
            location_ordering=settings.location_ordering,
            confirm=confirm,
        )
        if loader is None and use_live_engine:
            loader = LeafletLoader(settings)
        self.reconciler = PinReconciler(
            self.store,
            loader=loader,
            selection=self.coordinator,
            center=(settings.ranch_center_lat, settings.ranch_center_lng),
            default_zoom=settings.map_default_zoom,
            focus_zoom=settings.map_focus_zoom,
        )
        self.geolocation = GeolocationService.from_settings(settings, sensor)
        self._poll_task: asyncio.Task[None] | None = None
        self.mounted = False

    async def __aenter__(self) -> "MapSession":
        await self.mount()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.unmount()

    async def mount(self, *, poll: bool = True, monitor: bool = True) -> FetchResult:
        mode = await self.reconciler.mount()
        logger.info("Map view mounted (%s engine)", mode)
        if monitor:
            self.monitor.start()
        result = await self.refresh()
        if poll:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll(), name="map-poll")
        self.mounted = True
        return result

    async def refresh(self) -> FetchResult:
        return await self.coordinator.load()

    async def _poll(self) -> None:
        while True:
            await self._sleep(self.settings.poll_interval_seconds)
            if self.coordinator.submitting:
                logger.debug("Skipping poll while a change is in flight")
            else:
                try:
                    await self.refresh()
                except Exception:
                    logger.exception("Polling refresh failed")
            self.reconciler.rerender()

    async def unmount(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.monitor.stop()
        self.reconciler.unmount()
        self.coordinator.clear_selection()
        await self.client.aclose()
        self.mounted = False

    async def locate(self, entity_id: str, tracking: TrackingConfig | None = None) -> GeolocationResult:
        """Fija la ubicación de la entidad con la posición actual del sensor."""

        result = await self.geolocation.acquire()
        if result.location is not None:
            await self.coordinator.update_location(entity_id, result.location, tracking)
        return result

    def entities(self) -> list[TrackedEntity]:
        return self.store.entities()
