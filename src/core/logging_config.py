"""Configuración de logging.

Por qué centralizarlo:
- Los módulos solo usan `logging.getLogger(__name__)`; únicamente los puntos
  de entrada llaman `setup_logging`.
- La salida de consola pasa por Rich para compartir la consola de la CLI y no
  intercalarse con tablas y spinners.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(
    level: int | str = logging.INFO,
    *,
    console: Console | None = None,
    log_file: Path | None = None,
) -> None:
    """Configura el logging de toda la aplicación.

    Args:
        level: nombre o número del nivel.
        console: consola Rich donde se dibuja (por defecto stderr).
        log_file: archivo de log opcional en texto plano.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
    ]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("ranchsync").debug("Logging initialized")
