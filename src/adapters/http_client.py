"""Wrapper de httpx con deadline, reintentos y credenciales.

Por qué un wrapper:
- Estandariza timeouts, headers, retries y logging para todas las llamadas al
  backend del rancho.
- Devuelve `RequestOutcome` (resultado como dato) en vez de lanzar: los
  servicios deciden si propagan (`unwrap`) o sustituyen (fallback).
- Facilita testeo: se inyecta un `transport` (p.ej. `httpx.MockTransport`),
  un `sleep` y un reloj.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError as PydanticValidationError

from core.config import AppSettings
from core.domain.errors import (
    ApplicationError,
    ExhaustedRetries,
    NetworkUnavailable,
    RanchSyncError,
    RequestTimeout,
)
from core.domain.models import ApiEnvelope
from core.interfaces.credentials import CredentialSource


logger = logging.getLogger(__name__)

# Fallos de transporte que vale la pena reintentar (conexión rechazada,
# conexión cortada, DNS). Los timeouts de httpx quedan fuera a propósito.
_RETRIABLE = (httpx.NetworkError, httpx.RemoteProtocolError)


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    base_url: str | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` con defaults del backend.

    Por qué un builder:
    - Centraliza base URL/timeouts/headers para que todo el cliente se comporte igual.
    - Permite sustituir el transporte en pruebas.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    kwargs: dict[str, Any] = {}
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.AsyncClient(
        base_url=base_url if base_url is not None else settings.api_base_url,
        timeout=httpx.Timeout(settings.http_timeout_ms / 1000.0),
        follow_redirects=True,
        headers=headers,
        **kwargs,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Política plana: deadline por intento + N reintentos con espera fija."""

    timeout_ms: float = 30_000
    max_retries: int = 3
    retry_delay_ms: float = 1_000

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RetryPolicy":
        return cls(
            timeout_ms=settings.http_timeout_ms,
            max_retries=settings.http_max_retries,
            retry_delay_ms=settings.http_retry_delay_ms,
        )


@dataclass
class RequestSpec:
    method: str
    path: str
    params: dict[str, Any] | None = None
    json: Any = None
    headers: dict[str, str] | None = None
    timeout_ms: float | None = None

    def describe(self) -> str:
        return f"{self.method.upper()} {self.path}"


@dataclass
class RequestOutcome:
    """Resultado de `ResilientClient.execute`: payload o error, nunca ambos."""

    payload: Any = None
    error: RanchSyncError | None = None
    status_code: int | None = None
    attempts: int = 0
    elapsed_ms: float = 0.0
    message: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.payload


def parse_error_message(response: httpx.Response) -> str:
    """`message`, luego `error`, si no `HTTP <status>`."""

    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {response.status_code}"


def _as_envelope(body: Any) -> ApiEnvelope[Any] | None:
    """Sobre `{success, data, message?}` o None si la respuesta es JSON plano."""

    if not isinstance(body, dict) or "success" not in body:
        return None
    try:
        return ApiEnvelope[Any].model_validate(body)
    except PydanticValidationError:
        return None


class ResilientClient:
    """Cliente único hacia el backend con deadline duro y reintentos planos.

    Reglas:
    - Cada intento tiene un deadline (`asyncio.wait_for`); al vencer se cancela
      la llamada en curso y se devuelve `RequestTimeout`. Nunca se reintenta.
    - Solo fallos de transporte se reintentan, esperando `retry_delay_ms` fijo.
    - Una respuesta no-2xx se reporta inmediatamente como `ApplicationError`.
    - Un 401 invalida la credencial almacenada.
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        credentials: CredentialSource | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._credentials = credentials
        self.policy = policy or RetryPolicy.from_settings(settings)
        self._client = client or build_async_client(settings, transport=transport)
        self._owns_client = client is None
        self._sleep = sleep
        self._clock = clock

    async def __aenter__(self) -> "ResilientClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def with_policy(self, policy: RetryPolicy) -> "ResilientClient":
        """Otro cliente que comparte conexión/credenciales con otra política."""

        clone = ResilientClient(
            self._settings,
            credentials=self._credentials,
            policy=policy,
            client=self._client,
            sleep=self._sleep,
            clock=self._clock,
        )
        return clone

    def _headers(self, spec: RequestSpec) -> dict[str, str]:
        headers = {
            "X-Request-Time": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "X-Timezone": self._settings.timezone_name,
        }
        token = self._credentials.get_token() if self._credentials else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if spec.headers:
            headers.update(spec.headers)
        return headers

    async def execute(self, spec: RequestSpec) -> RequestOutcome:
        policy = self.policy
        timeout_ms = spec.timeout_ms if spec.timeout_ms is not None else policy.timeout_ms
        timeout_s = timeout_ms / 1000.0
        started = self._clock()

        def _done(**kwargs: Any) -> RequestOutcome:
            elapsed = max(0.0, (self._clock() - started) * 1000.0)
            return RequestOutcome(elapsed_ms=elapsed, **kwargs)

        last_exc: BaseException | None = None
        attempts = 0
        for attempt in range(max(1, policy.max_retries + 1)):
            attempts = attempt + 1
            try:
                response = await asyncio.wait_for(
                    self._client.request(
                        spec.method.upper(),
                        spec.path,
                        params=spec.params,
                        json=spec.json,
                        headers=self._headers(spec),
                        timeout=httpx.Timeout(timeout_s),
                    ),
                    timeout=timeout_s,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                logger.warning("%s timed out after %.0f ms", spec.describe(), timeout_ms)
                return _done(error=RequestTimeout(timeout_ms), attempts=attempts)
            except _RETRIABLE as exc:
                last_exc = exc
                if policy.max_retries == 0:
                    logger.warning("%s failed: %s", spec.describe(), exc)
                    return _done(error=NetworkUnavailable(str(exc) or "network unavailable"), attempts=attempts)
                if attempt < policy.max_retries:
                    logger.info(
                        "%s transport failure (%s), retry %d/%d in %.0f ms",
                        spec.describe(),
                        exc.__class__.__name__,
                        attempt + 1,
                        policy.max_retries,
                        policy.retry_delay_ms,
                    )
                    await self._sleep(policy.retry_delay_ms / 1000.0)
                    continue
                break
            except httpx.HTTPError as exc:
                logger.warning("%s failed without retry: %s", spec.describe(), exc)
                return _done(error=NetworkUnavailable(str(exc) or exc.__class__.__name__), attempts=attempts)

            return self._interpret(response, spec=spec, attempts=attempts, done=_done)

        logger.warning("%s exhausted %d attempts", spec.describe(), attempts)
        return _done(error=ExhaustedRetries(attempts, last_exc), attempts=attempts)

    def _interpret(
        self,
        response: httpx.Response,
        *,
        spec: RequestSpec,
        attempts: int,
        done: Callable[..., RequestOutcome],
    ) -> RequestOutcome:
        status = response.status_code

        if status == 401 and self._credentials is not None:
            logger.warning("%s returned 401; clearing stored credential", spec.describe())
            self._credentials.clear()

        if not response.is_success:
            message = parse_error_message(response)
            logger.info("%s -> %d %s", spec.describe(), status, message)
            return done(
                error=ApplicationError(status, message),
                status_code=status,
                attempts=attempts,
                message=message,
            )

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None

        envelope = _as_envelope(body)
        if envelope is None:
            return done(payload=body, status_code=status, attempts=attempts)

        if not envelope.success:
            text = envelope.error_text or f"HTTP {status}"
            return done(
                error=ApplicationError(status, text),
                status_code=status,
                attempts=attempts,
                message=text,
                raw=body,
            )
        return done(
            payload=envelope.data,
            status_code=status,
            attempts=attempts,
            message=envelope.message,
            raw=body,
        )
