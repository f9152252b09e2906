"""Contrato de origen de credenciales (token bearer)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class CredentialSource(Protocol):
    def get_token(self) -> str | None:
        ...

    def clear(self) -> None:
        """Invalida el token (p.ej. tras un 401)."""

        ...
