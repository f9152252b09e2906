"""Punto de entrada de la CLI (Typer).

Cada comando construye un `AppSettings` y se lo pasa a los servicios; nada
por debajo de la CLI lee el entorno por su cuenta.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel

from adapters import ranch_api
from adapters.credential_store import FileCredentialStore
from adapters.http_client import ResilientClient
from adapters.json_exporter import export_pins_json
from adapters.map_exporter import export_map_html
from adapters.map_engines.simulated import SimulatedSurface, grid_cell
from cli import doctor
from cli.ui_components import build_kv_table, build_pins_table, build_status_panel, print_banner
from core.config import AppSettings
from core.domain.errors import RanchSyncError, describe_error
from core.domain.models import ConnectionStatus, GeoLocation, LocationSource, TrackedEntity, utc_now
from core.logging_config import setup_logging
from core.services.coordinator import edit_ranch_profile
from core.services.fallback import FallbackProvider
from core.services.health_monitor import ConnectionMonitor
from core.services.map_session import MapSession

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, help="Resilient ranch sync and map reconciliation.")
app.add_typer(doctor.app, name="doctor")

_console = Console()

_OVERVIEWS: dict[str, Callable[[], ranch_api.ReadOperation]] = {
    "dashboard": ranch_api.dashboard_overview,
    "stats": ranch_api.cattle_stats,
    "production": ranch_api.production_metrics,
    "health": ranch_api.health_metrics,
    "ranch": ranch_api.ranch_overview,
    "boundaries": ranch_api.ranch_boundaries,
    "profile": ranch_api.ranch_profile,
}


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide the banner."),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write logs to this file."),
) -> None:
    settings = AppSettings()
    setup_logging(
        "DEBUG" if verbose else settings.log_level,
        console=Console(stderr=True),
        log_file=log_file,
    )
    if not quiet:
        print_banner(_console)


def _run(coro: Awaitable[T]) -> T:
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except RanchSyncError as exc:
        _console.print(Panel(describe_error(exc), title="Error", border_style="red"))
        raise typer.Exit(code=1) from exc


@app.command()
def status() -> None:
    """Probe the backend once and show the connection indicator."""

    settings = AppSettings()

    async def _probe() -> ConnectionStatus:
        async with ResilientClient(settings, credentials=FileCredentialStore.from_settings(settings)) as client:
            monitor = ConnectionMonitor.from_settings(settings, client)
            return await monitor.check_now()

    result = _run(_probe())
    _console.print(build_status_panel(result))
    if not result.is_connected:
        raise typer.Exit(code=1)


@app.command()
def watch(seconds: float = typer.Option(90.0, min=1.0, help="How long to keep monitoring.")) -> None:
    """Monitor backend health, printing every status change."""

    settings = AppSettings()

    async def _watch() -> None:
        async with ResilientClient(settings, credentials=FileCredentialStore.from_settings(settings)) as client:
            monitor = ConnectionMonitor.from_settings(settings, client)

            def _show(st: ConnectionStatus) -> None:
                if not st.retrying:
                    _console.print(build_status_panel(st))

            monitor.add_listener(_show)
            monitor.start()
            try:
                await asyncio.sleep(seconds)
            finally:
                await monitor.stop()

    _run(_watch())


@app.command()
def pins(
    simulated: bool = typer.Option(False, "--simulated", help="Skip the live map engine."),
    json_out: Path | None = typer.Option(None, "--json", help="Write pins as GeoJSON."),
    html_out: Path | None = typer.Option(None, "--html", help="Write the rendered map as HTML."),
) -> None:
    """Load cattle, reconcile pins and show them."""

    settings = AppSettings()

    async def _pins() -> None:
        session = MapSession(settings, use_live_engine=not simulated)
        try:
            result = await session.mount(poll=False, monitor=False)
            reconciler = session.reconciler
            current = reconciler.pins
            colors = {p.id: reconciler.color_of(p.id) or "" for p in current}
            cells = None
            if isinstance(reconciler.surface, SimulatedSurface):
                cells = {p.id: grid_cell(i) for i, p in enumerate(current)}

            _console.print(build_pins_table(current, colors=colors, cells=cells, now=utc_now()))
            _console.print(
                f"[dim]{len(session.entities())} entities • source: {result.source} • engine: {reconciler.mode}[/dim]"
            )
            if json_out is not None:
                export_pins_json(pins=current, output_path=json_out, colors=colors)
                _console.print(f"[green]GeoJSON:[/green] {json_out}")
            if html_out is not None and reconciler.surface is not None:
                export_map_html(
                    surface=reconciler.surface,
                    output_path=html_out,
                    offline=result.is_fallback,
                    engine_js_url=settings.map_engine_js_url,
                    engine_css_url=settings.map_engine_css_url,
                )
                _console.print(f"[green]HTML:[/green] {html_out}")
        finally:
            await session.unmount()

    _run(_pins())


@app.command()
def overview(
    kind: str = typer.Argument("dashboard", help=f"One of: {', '.join(_OVERVIEWS)}"),
) -> None:
    """Show an overview/stat screen (falls back to demo data when offline)."""

    factory = _OVERVIEWS.get(kind)
    if factory is None:
        raise typer.BadParameter(f"unknown overview {kind!r}")
    settings = AppSettings()

    async def _fetch() -> tuple[dict[str, Any], str]:
        async with ResilientClient(settings, credentials=FileCredentialStore.from_settings(settings)) as client:
            result = await FallbackProvider(client).fetch_or_fallback(factory())
        return result.data.model_dump(mode="json"), result.source

    data, source = _run(_fetch())
    _console.print(build_kv_table(kind.title(), data, source=source))


@app.command()
def profile(
    name: str | None = typer.Option(None, "--name"),
    owner: str | None = typer.Option(None, "--owner"),
    address: str | None = typer.Option(None, "--address"),
    phone: str | None = typer.Option(None, "--phone"),
    email: str | None = typer.Option(None, "--email"),
    area_hectares: float | None = typer.Option(None, "--area-hectares", min=0.0),
) -> None:
    """Show the ranch profile, or update the given fields on the server."""

    changes = {
        key: value
        for key, value in {
            "name": name,
            "owner": owner,
            "address": address,
            "phone": phone,
            "email": email,
            "area_hectares": area_hectares,
        }.items()
        if value is not None
    }
    if not changes:
        overview("profile")
        return
    settings = AppSettings()

    async def _edit() -> dict[str, Any]:
        async with ResilientClient(settings, credentials=FileCredentialStore.from_settings(settings)) as client:
            updated = await edit_ranch_profile(client, changes)
        return updated.model_dump(mode="json")

    data = _run(_edit())
    _console.print(build_kv_table("Profile", data, source="live"))


@app.command()
def add(
    ear_tag: str = typer.Option(..., "--ear-tag"),
    breed: str = typer.Option(..., "--breed"),
    age: float = typer.Option(..., "--age"),
    sex: str = typer.Option(..., "--sex"),
    weight: float | None = typer.Option(None, "--weight"),
) -> None:
    """Register an animal."""

    settings = AppSettings()

    async def _add() -> TrackedEntity:
        session = MapSession(settings, use_live_engine=False)
        try:
            data: dict[str, Any] = {"earTag": ear_tag, "breed": breed, "age": age, "sex": sex}
            if weight is not None:
                data["weight"] = weight
            return await session.coordinator.create(data)
        finally:
            await session.client.aclose()

    created = _run(_add())
    _console.print(f"[green]Created[/green] {created.ear_tag} ({created.id})")


@app.command()
def move(
    entity_id: str = typer.Argument(...),
    lat: float = typer.Option(..., "--lat"),
    lng: float = typer.Option(..., "--lng"),
    accuracy: float = typer.Option(5.0, "--accuracy"),
) -> None:
    """Set an animal's location (manual fix)."""

    settings = AppSettings()

    async def _move() -> TrackedEntity:
        session = MapSession(settings, use_live_engine=False)
        try:
            await session.refresh()
            location = GeoLocation(latitude=lat, longitude=lng, accuracy=accuracy, source=LocationSource.MANUAL)
            return await session.coordinator.update_location(entity_id, location)
        finally:
            await session.client.aclose()

    moved = _run(_move())
    _console.print(f"[green]Updated[/green] {moved.ear_tag or moved.id} -> {lat:.5f}, {lng:.5f}")


@app.command()
def remove(entity_id: str = typer.Argument(...), yes: bool = typer.Option(False, "--yes", "-y")) -> None:
    """Delete an animal (asks for confirmation)."""

    settings = AppSettings()

    def _confirm(entity: TrackedEntity) -> bool:
        return yes or typer.confirm(f"Delete {entity.ear_tag or entity.id}?", default=False)

    async def _remove() -> None:
        session = MapSession(settings, use_live_engine=False, confirm=_confirm)
        try:
            await session.refresh()
            await session.coordinator.delete(entity_id)
        finally:
            await session.client.aclose()

    _run(_remove())
    _console.print(f"[green]Deleted[/green] {entity_id}")


@app.command()
def login(token: str = typer.Option(..., prompt=True, hide_input=True)) -> None:
    """Store the bearer token used for backend calls."""

    path = FileCredentialStore.from_settings(AppSettings()).save(token.strip())
    _console.print(f"[green]Token saved to:[/green] {path}")


@app.command()
def logout() -> None:
    """Forget the stored bearer token."""

    FileCredentialStore.from_settings(AppSettings()).clear()
    _console.print("[green]Token removed.[/green]")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
