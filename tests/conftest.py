"""Shared fixtures: settings isolated from the user's .env, a fake backend, clocks."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest

from adapters.credential_store import StaticCredentialSource
from adapters.http_client import ResilientClient, RetryPolicy
from core.config import AppSettings
from core.domain.models import GeoLocation, LocationSource, TrackedEntity


BASE_URL = "http://ranch.test/api"
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def envelope(data: Any = None, *, success: bool = True, message: str | None = None, status: int = 200) -> httpx.Response:
    body: dict[str, Any] = {"success": success, "data": data}
    if message is not None:
        body["message"] = message
    return httpx.Response(status, json=body)


class FakeBackend:
    """Routes `(METHOD, path)` to handlers and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], Any]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, handler: Callable[[httpx.Request], Any]) -> None:
        self.routes[(method.upper(), path)] = handler

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        full = "/api" + path
        return [r for r in self.requests if r.method == method.upper() and r.url.path == full]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"success": False, "message": f"no route {path}"})
        result = handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class MutableClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def body_of(request: httpx.Request) -> Any:
    return json.loads(request.content.decode("utf-8"))


def cow(entity_id: str = "c1", *, ear_tag: str = "COW-001", location: GeoLocation | None = None) -> TrackedEntity:
    return TrackedEntity(
        id=entity_id,
        ear_tag=ear_tag,
        breed="Holstein",
        age=3,
        weight=450,
        sex="female",
        location=location,
    )


def fix(lat: float, lng: float, *, at: datetime = T0, accuracy: float = 5.0) -> GeoLocation:
    return GeoLocation(latitude=lat, longitude=lng, accuracy=accuracy, timestamp=at, source=LocationSource.GPS)


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return AppSettings(
        _env_file=None,
        api_base_url=BASE_URL,
        http_timeout_ms=2_000,
        http_max_retries=2,
        http_retry_delay_ms=250,
        credentials_path=tmp_path / "credentials.json",
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def credentials() -> StaticCredentialSource:
    return StaticCredentialSource("secret-token")


@pytest.fixture
def make_client(settings, backend, sleeps, credentials) -> Callable[..., ResilientClient]:
    def _make(**policy: Any) -> ResilientClient:
        retry = RetryPolicy.from_settings(settings)
        if policy:
            retry = RetryPolicy(
                timeout_ms=policy.get("timeout_ms", retry.timeout_ms),
                max_retries=policy.get("max_retries", retry.max_retries),
                retry_delay_ms=policy.get("retry_delay_ms", retry.retry_delay_ms),
            )
        return ResilientClient(
            settings,
            credentials=credentials,
            policy=retry,
            transport=backend.transport(),
            sleep=sleeps,
        )

    return _make


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()
