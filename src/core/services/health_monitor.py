"""Monitor de salud de la conexión.

Sondea el backend (`GET /ping`) apenas se llama `start()` y luego una vez por
intervalo hasta `stop()`. Publica un `ConnectionStatus` inmutable que se
reemplaza en cada sondeo y avisa a los listeners.

Por qué un solo sondeo en vuelo:
- Un `check_now()` manual durante un sondeo espera ese mismo sondeo en vez de
  lanzar otro; así nunca hay dos pings compitiendo por el estado.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from adapters import ranch_api
from adapters.http_client import ResilientClient, RetryPolicy
from core.config import AppSettings
from core.domain.errors import describe_error
from core.domain.models import ConnectionPhase, ConnectionStatus, utc_now


logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus], None]


class ConnectionMonitor:
    """Idle -> Probing -> {Connected, Disconnected}; cada tick vuelve a Probing."""

    def __init__(
        self,
        client: ResilientClient,
        *,
        interval_s: float = 30.0,
        probe_timeout_ms: float = 10_000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        # Probes never retry: a failed /ping is itself the signal.
        self._client = client.with_policy(
            RetryPolicy(timeout_ms=probe_timeout_ms, max_retries=0, retry_delay_ms=0)
        )
        self.interval_s = interval_s
        self.probe_timeout_ms = probe_timeout_ms
        self._clock = clock
        self._sleep = sleep
        self._status = ConnectionStatus()
        self._listeners: list[StatusListener] = []
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[ConnectionStatus] | None = None
        self._stopped = False
        self.probes_started = 0

    @classmethod
    def from_settings(cls, settings: AppSettings, client: ResilientClient) -> "ConnectionMonitor":
        return cls(
            client,
            interval_s=settings.health_interval_seconds,
            probe_timeout_ms=settings.health_probe_timeout_ms,
        )

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Registra un listener; devuelve la función para desregistrarlo."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _publish(self, status: ConnectionStatus) -> None:
        previous = self._status
        self._status = status
        if previous.is_connected != status.is_connected and status.phase is not ConnectionPhase.PROBING:
            logger.info(
                "Backend %s (latency %.0f ms)",
                "reachable" if status.is_connected else "unreachable",
                status.latency_ms,
            )
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Connection status listener failed")

    def start(self) -> None:
        if self.is_running:
            return
        self._stopped = False
        self._loop_task = asyncio.get_running_loop().create_task(self._run(), name="connection-monitor")

    async def stop(self) -> None:
        self._stopped = True
        tasks = [t for t in (self._loop_task, self._inflight) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._loop_task = None
        self._inflight = None
        if self._status.retrying:
            self._publish(self._status.model_copy(update={"retrying": False}))

    async def _run(self) -> None:
        while not self._stopped:
            await self.check_now()
            await self._sleep(self.interval_s)

    async def check_now(self) -> ConnectionStatus:
        """Sondeo manual. Idempotente mientras haya uno en curso."""

        if self._stopped:
            return self._status
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)

        self._publish(
            self._status.model_copy(update={"retrying": True, "phase": ConnectionPhase.PROBING})
        )
        self.probes_started += 1
        self._inflight = asyncio.get_running_loop().create_task(self._probe())
        return await asyncio.shield(self._inflight)

    async def _probe(self) -> ConnectionStatus:
        started = self._clock()
        outcome = await ranch_api.ping(self._client, timeout_ms=self.probe_timeout_ms)
        latency_ms = max(0.0, (self._clock() - started) * 1000.0)

        if outcome.ok:
            status = ConnectionStatus(
                is_connected=True,
                last_check=utc_now(),
                latency_ms=latency_ms,
                retrying=False,
                phase=ConnectionPhase.CONNECTED,
            )
        else:
            logger.debug("Ping failed: %s", outcome.error)
            status = ConnectionStatus(
                is_connected=False,
                last_check=utc_now(),
                latency_ms=latency_ms,
                retrying=False,
                phase=ConnectionPhase.DISCONNECTED,
                error=describe_error(outcome.error) if outcome.error else None,
            )
        self._publish(status)
        return status

    def prefers_fallback(self) -> bool:
        """True si el último sondeo completado reportó desconexión."""

        return self._status.last_check is not None and not self._status.is_connected
