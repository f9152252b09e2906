"""Taxonomía de errores del dominio.

Por qué una jerarquía propia:
- La capa HTTP devuelve fallos como datos (`RequestOutcome`) y los servicios
  deciden si propagarlos; ambos necesitan un vocabulario común.
- La CLI y las vistas distinguen "reintenta más tarde" (transporte) de
  "el servidor rechazó la operación" (aplicación) sin inspeccionar httpx.
"""

from __future__ import annotations


class RanchSyncError(Exception):
    """Raíz de todos los errores esperados de la librería."""


class TransportError(RanchSyncError):
    """La petición no obtuvo respuesta HTTP utilizable."""


class RequestTimeout(TransportError):
    def __init__(self, timeout_ms: float) -> None:
        super().__init__(f"request exceeded {timeout_ms:g} ms deadline")
        self.timeout_ms = timeout_ms


class NetworkUnavailable(TransportError):
    def __init__(self, detail: str = "network unavailable") -> None:
        super().__init__(detail)
        self.detail = detail


class ExhaustedRetries(TransportError):
    """Se agotaron los reintentos ante fallos de transporte."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        reason = f": {last_error}" if last_error is not None else ""
        super().__init__(f"gave up after {attempts} attempts{reason}")
        self.attempts = attempts
        self.last_error = last_error


class OfflineReadOnly(TransportError):
    """La vista muestra datos de respaldo: no se envían mutaciones."""

    def __init__(self, action: str = "change data") -> None:
        super().__init__(f"cannot {action} while showing offline demo data")
        self.action = action


class ApplicationError(RanchSyncError):
    """El backend respondió, pero con un estado no exitoso."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"[{status}] {message}")
        self.status = status
        self.message = message


class ValidationError(RanchSyncError):
    """Campos inválidos detectados antes de enviar nada a la red."""

    def __init__(self, fields: dict[str, str]) -> None:
        joined = ", ".join(f"{k}: {v}" for k, v in fields.items())
        super().__init__(f"invalid fields ({joined})")
        self.fields = dict(fields)


class ConfirmationAborted(RanchSyncError):
    """El usuario rechazó una operación destructiva."""


class MutationInFlight(RanchSyncError):
    """Ya hay una mutación en curso para esta vista."""


def describe_error(exc: BaseException) -> str:
    """Texto corto para banners/indicadores de UI."""

    if isinstance(exc, OfflineReadOnly):
        return "Showing demo data while the server is unreachable. Changes are disabled until it is back."
    if isinstance(exc, RequestTimeout):
        return "The server took too long to respond."
    if isinstance(exc, (NetworkUnavailable, ExhaustedRetries)):
        return "No connection to the server. Check your network and retry."
    if isinstance(exc, ApplicationError):
        if exc.status == 401:
            return "Your session expired. Please log in again."
        return exc.message
    if isinstance(exc, ValidationError):
        return "Please fix: " + ", ".join(sorted(exc.fields))
    if isinstance(exc, ConfirmationAborted):
        return "Operation cancelled."
    if isinstance(exc, MutationInFlight):
        return "Another change is still being saved."
    return str(exc) or exc.__class__.__name__
