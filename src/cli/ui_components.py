"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar tablas/paneles en múltiples comandos.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import ConnectionPhase, ConnectionStatus, LocationPin


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida."""

    title = Text("RANCHSYNC", style="bold green")
    subtitle = Text("Ganado • Ubicaciones • Sincronización resiliente", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="green", padding=(1, 4)))


def status_display(status: ConnectionStatus) -> tuple[str, str]:
    """(etiqueta, estilo) para el indicador de conexión."""

    if status.phase is ConnectionPhase.PROBING or status.retrying:
        return ("Checking…", "yellow")
    if status.last_check is None:
        return ("Unknown", "dim")
    if status.is_connected:
        return ("Online", "green")
    return ("Offline", "red")


def build_status_panel(status: ConnectionStatus) -> Panel:
    label, style = status_display(status)
    body = Text()
    body.append(f"{label}\n", style=f"bold {style}")
    body.append(f"Latency: {status.latency_ms:.0f} ms\n")
    if status.last_check:
        body.append(f"Last check: {status.last_check.isoformat(timespec='seconds')}\n", style="dim")
    if status.error:
        body.append(status.error, style="red")
    if not status.is_connected and status.last_check is not None:
        body.append("\nRetry with: ranchsync status", style="dim")
    return Panel(body, title="Backend connection", border_style=style)


def build_pins_table(
    pins: list[LocationPin],
    *,
    colors: dict[str, str],
    cells: dict[str, tuple[int, int]] | None = None,
    now: datetime,
) -> Table:
    table = Table(title="Location pins")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Ear tag", style="cyan", no_wrap=True)
    table.add_column("Breed", style="white")
    table.add_column("Lat, Lng", style="magenta")
    table.add_column("Age", style="white")
    table.add_column("Color")
    if cells is not None:
        table.add_column("Grid cell", style="dim")

    for index, pin in enumerate(pins):
        age_min = max(0, int((now - pin.timestamp).total_seconds() // 60))
        color = colors.get(pin.id, "#6b7280")
        row: list[Any] = [
            str(index),
            str(pin.metadata.get("ear_tag") or pin.entity_ref),
            str(pin.metadata.get("breed") or "-"),
            f"{pin.coordinate[0]:.5f}, {pin.coordinate[1]:.5f}",
            f"{age_min} min",
            Text("●", style=color) + Text(f" {color}"),
        ]
        if cells is not None:
            col, r = cells.get(pin.id, (0, 0))
            row.append(f"({col},{r})")
        table.add_row(*row)
    return table


def build_kv_table(title: str, data: dict[str, Any], *, source: str) -> Table:
    table = Table(title=f"{title} ({source})")
    table.add_column("Field", style="bright_green", no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in data.items():
        if isinstance(value, list):
            value = f"{len(value)} items"
        table.add_row(key, str(value))
    return table
