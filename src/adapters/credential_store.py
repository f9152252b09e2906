"""Almacén local del token bearer.

Por qué en adapters:
- Persistir en disco es infraestructura; el Core solo conoce `CredentialSource`.
- El archivo vive junto al `.env` de usuario (mismo directorio de config).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from core.config import AppSettings


logger = logging.getLogger(__name__)


class FileCredentialStore:
    """Token persistido en JSON: `{"token": ..., "saved_at": ...}`."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._cached: str | None = None
        self._loaded = False

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "FileCredentialStore":
        return cls(settings.resolved_credentials_path())

    def get_token(self) -> str | None:
        if not self._loaded:
            self._cached = self._read()
            self._loaded = True
        return self._cached

    def _read(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable credential file %s: %s", self.path, exc)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        return token if isinstance(token, str) and token else None

    def save(self, token: str) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"token": token, "saved_at": datetime.now(timezone.utc).isoformat(timespec="seconds")}
        self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        self._cached = token
        self._loaded = True
        return self.path

    def clear(self) -> None:
        self._cached = None
        self._loaded = True
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove credential file %s: %s", self.path, exc)


class StaticCredentialSource:
    """Token en memoria (pruebas, scripts)."""

    def __init__(self, token: str | None = None) -> None:
        self.token = token
        self.cleared = False

    def get_token(self) -> str | None:
        return self.token

    def clear(self) -> None:
        self.token = None
        self.cleared = True
