"""Cargador de recursos del motor de mapas.

Este módulo vive en `core/` porque:
- centraliza *qué* recursos externos necesita la vista de mapa (JS/CSS del
  motor) y dónde se cachean, sin acoplarse a la CLI;
- evita duplicar lógica de paths/descarga en los adaptadores de motor.

No incluye los assets en el repo; se descargan a `data/` (ignorarlo en git).
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from adapters.http_client import build_async_client
from core.config import AppSettings, get_user_config_dir


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineAssets:
    js_path: Path
    css_path: Path

    def exist(self) -> bool:
        return self.js_path.is_file() and self.css_path.is_file()


def _project_root() -> Path:
    # core/resources_loader.py -> core -> src -> <project_root>
    return Path(__file__).resolve().parents[2]


def _data_dir(settings: AppSettings) -> Path:
    """Directorio de datos en runtime.

    Reglas:
    - Si `settings.data_dir` está definido, se usa tal cual.
    - Si estamos en modo "frozen" (PyInstaller), usar un path escribible del usuario.
    - En desarrollo, usar <project_root>/data.
    """

    if settings.data_dir is not None:
        return settings.data_dir
    if getattr(sys, "frozen", False):
        return get_user_config_dir() / "data"
    return _project_root() / "data"


def _asset_name(url: str, default: str) -> str:
    name = Path(urlparse(url).path).name
    return name or default


def engine_asset_paths(settings: AppSettings) -> EngineAssets:
    base = _data_dir(settings) / "map_engine"
    return EngineAssets(
        js_path=base / _asset_name(settings.map_engine_js_url, "engine.js"),
        css_path=base / _asset_name(settings.map_engine_css_url, "engine.css"),
    )


async def download_engine_assets(
    settings: AppSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> EngineAssets:
    """Descarga JS y CSS del motor (un solo intento, sin reintentos).

    Lanza `httpx.HTTPError` si cualquiera de las dos descargas falla. Ambos
    archivos se escriben primero como `.part` y solo se renombran cuando los
    dos quedaron completos; ante un `OSError` se borran los temporales.
    """

    assets = engine_asset_paths(settings)
    timeout = httpx.Timeout(settings.map_engine_load_timeout_ms / 1000.0)

    async with build_async_client(
        settings,
        extra_headers={"Accept": "*/*"},
        transport=transport,
        base_url="",
    ) as client:
        js = await client.get(settings.map_engine_js_url, timeout=timeout)
        js.raise_for_status()
        css = await client.get(settings.map_engine_css_url, timeout=timeout)
        css.raise_for_status()

    assets.js_path.parent.mkdir(parents=True, exist_ok=True)
    staged = [
        (assets.js_path.with_name(assets.js_path.name + ".part"), assets.js_path, js.content),
        (assets.css_path.with_name(assets.css_path.name + ".part"), assets.css_path, css.content),
    ]
    try:
        for part, _, content in staged:
            part.write_bytes(content)
        for part, final, _ in staged:
            os.replace(part, final)
    finally:
        for part, _, _ in staged:
            part.unlink(missing_ok=True)
    logger.info("Map engine assets cached in %s", assets.js_path.parent)
    return assets
