"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Se construye una sola vez en la composición (CLI / `MapSession`) y se pasa
  explícitamente a cada componente: ningún servicio lee el entorno por su cuenta.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_DIR_NAME = "ranchsync"


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_DIR_NAME
    return Path.home() / ".config" / APP_DIR_NAME


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            data[key] = value.strip().strip('"').strip("'")
    return data


def write_user_env_vars(values: dict[str, str | None], *, env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario.

    Un valor `None` elimina la clave.
    """

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    for key, value in values.items():
        if value is None:
            existing.pop(key, None)
        else:
            existing[key] = value

    lines = ["# ranchsync user config (.env)"]
    for key in sorted(existing):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Un único contrato de configuración para CLI/adapters/servicios.
    """

    model_config = SettingsConfigDict(
        env_prefix="RANCHSYNC_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    # Backend / resiliencia
    api_base_url: str = Field(
        default="http://localhost:5000/api",
        min_length=8,
        description="Base URL del backend REST.",
    )
    http_timeout_ms: float = Field(
        default=30_000,
        gt=0,
        description="Deadline duro por intento (milisegundos).",
    )
    http_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Reintentos máximos ante fallos de transporte.",
    )
    http_retry_delay_ms: float = Field(
        default=1_000,
        ge=0,
        description="Espera fija entre reintentos (milisegundos).",
    )
    user_agent: str = Field(
        default="ranchsync/0.1",
        min_length=1,
        description="User-Agent de las peticiones al backend.",
    )
    timezone_name: str = Field(
        default="America/Mexico_City",
        description="Zona horaria enviada en `X-Timezone`.",
    )
    credentials_path: Path | None = Field(
        default=None,
        description="Archivo del token persistido (por defecto en el dir de usuario).",
    )

    # Monitor de conexión
    health_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Intervalo entre sondeos a /ping.",
    )
    health_probe_timeout_ms: float = Field(
        default=10_000,
        gt=0,
        description="Deadline del sondeo de salud.",
    )
    prefer_fallback_when_offline: bool = Field(
        default=True,
        description="Servir datos de respaldo sin intentar la red si el monitor reporta desconexión.",
    )

    # Vistas de mapa
    poll_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Intervalo de refresco del listado de entidades.",
    )
    location_ordering: Literal["monotonic", "last_resolved"] = Field(
        default="monotonic",
        description="Política ante actualizaciones de ubicación que resuelven fuera de orden.",
    )
    map_engine_js_url: str = Field(default="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js")
    map_engine_css_url: str = Field(default="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css")
    map_engine_load_timeout_ms: float = Field(default=15_000, gt=0)
    map_tile_url: str = Field(default="https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png")
    map_tile_attribution: str = Field(default="© OpenStreetMap contributors")
    map_max_zoom: int = Field(default=18, ge=1, le=22)
    map_default_zoom: int = Field(default=13, ge=1, le=22)
    map_focus_zoom: int = Field(default=15, ge=1, le=22)
    ranch_center_lat: float = Field(default=17.9889, ge=-90, le=90)
    ranch_center_lng: float = Field(default=-92.9303, ge=-180, le=180)

    # Geolocalización
    geolocation_timeout_ms: float = Field(default=10_000, gt=0)
    geolocation_max_cache_age_ms: float = Field(default=60_000, ge=0)

    data_dir: Path | None = Field(
        default=None,
        description="Directorio de recursos descargados (assets del motor de mapas).",
    )

    log_level: str = Field(default="INFO", description="Nivel de logging (DEBUG/INFO/WARNING...).")

    def resolved_credentials_path(self) -> Path:
        return self.credentials_path or (get_user_config_dir() / "credentials.json")
