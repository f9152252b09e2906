"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters import ranch_api
from adapters.credential_store import FileCredentialStore
from adapters.fallback_datasets import fallback_payload
from adapters.http_client import ResilientClient
from core.config import AppSettings, write_user_env_vars
from core.resources_loader import download_engine_assets, engine_asset_paths

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()

# Una lectura por dataset: basta con que cada uno valide contra su esquema.
_DATASET_CHECKS = (
    ranch_api.list_cattle(),
    ranch_api.cattle_nearby(lat=17.9869, lng=-92.9303, radius_m=500),
    ranch_api.cattle_by_area(north_east=(17.99, -92.92), south_west=(17.98, -92.94)),
    ranch_api.cattle_stats(),
    ranch_api.ranch_overview(),
    ranch_api.ranch_boundaries(),
    ranch_api.cattle_locations(),
    ranch_api.ranch_profile(),
    ranch_api.dashboard_overview(),
    ranch_api.production_metrics(),
    ranch_api.health_metrics(),
)


async def _check_backend(settings: AppSettings) -> tuple[bool, str]:
    async with ResilientClient(settings, credentials=FileCredentialStore.from_settings(settings)) as client:
        outcome = await ranch_api.ping(client, timeout_ms=settings.health_probe_timeout_ms)
    if outcome.ok:
        return True, f"HTTP {outcome.status_code} in {outcome.elapsed_ms:.0f} ms"
    return False, str(outcome.error)


def _check_datasets() -> tuple[bool, str]:
    failures: list[str] = []
    for op in _DATASET_CHECKS:
        try:
            op.parse(fallback_payload(op.name, op.params))
        except Exception as exc:
            failures.append(f"{op.name}: {exc.__class__.__name__}")
    if failures:
        return False, "; ".join(failures)
    return True, f"{len(_DATASET_CHECKS)} datasets valid"


@app.command()
def run(
    fetch_engine: bool = typer.Option(False, "--fetch-engine", help="Download map engine assets if missing."),
) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="ranchsync doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    table.add_row("API base URL", "OK", settings.api_base_url)
    table.add_row(
        "Retry policy",
        "OK",
        f"timeout={settings.http_timeout_ms:g}ms retries={settings.http_max_retries} delay={settings.http_retry_delay_ms:g}ms",
    )

    store = FileCredentialStore.from_settings(settings)
    if store.get_token():
        table.add_row("Credentials", "OK", str(store.path))
    else:
        table.add_row("Credentials", "OPTIONAL", "No token stored -> run `ranchsync login`")

    ok_http, detail_http = asyncio.run(_check_backend(settings))
    table.add_row("Backend /ping", "OK" if ok_http else "FAIL", detail_http)

    assets = engine_asset_paths(settings)
    if not assets.exist() and fetch_engine:
        try:
            asyncio.run(download_engine_assets(settings))
        except Exception as exc:
            table.add_row("Map engine download", "FAIL", str(exc))
    if assets.exist():
        table.add_row("Map engine", "OK", str(assets.js_path.parent))
    else:
        table.add_row("Map engine", "OPTIONAL", "Not cached -> simulated layout until loaded")

    ok_ds, detail_ds = _check_datasets()
    table.add_row("Fallback datasets", "OK" if ok_ds else "FAIL", detail_ds)

    _console.print(table)

    if not ok_http:
        _console.print(
            "\n[yellow]Note:[/yellow] While the backend is unreachable, map views serve labelled demo data."
        )


@app.command()
def configure() -> None:
    """Interactive setup (stores config in the user config .env)."""

    current = AppSettings()
    base_url = typer.prompt("API base URL", default=current.api_base_url, show_default=True).strip()
    timeout_ms = typer.prompt("Request timeout (ms)", default=int(current.http_timeout_ms), type=int)
    retries = typer.prompt("Max retries", default=current.http_max_retries, type=int)
    ordering = typer.prompt(
        "Location ordering (monotonic/last_resolved)",
        default=current.location_ordering,
        show_default=True,
    ).strip()

    if ordering not in ("monotonic", "last_resolved"):
        raise typer.BadParameter("ordering must be 'monotonic' or 'last_resolved'")
    if not base_url:
        raise typer.BadParameter("base URL is required")

    env_path = write_user_env_vars(
        {
            "RANCHSYNC_API_BASE_URL": base_url,
            "RANCHSYNC_HTTP_TIMEOUT_MS": str(timeout_ms),
            "RANCHSYNC_HTTP_MAX_RETRIES": str(retries),
            "RANCHSYNC_LOCATION_ORDERING": ordering,
        }
    )

    _console.print(f"[green]Saved config to:[/green] {env_path}")
