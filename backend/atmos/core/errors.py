"""
Domain error taxonomy shared by the API, the services and the offline client.

Every error carries the HTTP status it maps to and a user facing message; the
exception handlers in ``atmos.main`` render them as ``{"error": message}``.
"""

from __future__ import annotations

from fastapi import status


class AtmosError(Exception):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Error inesperado"
    # Seconds the client should wait before retrying, sent as Retry-After.
    retry_after: int | None = None

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthenticated(AtmosError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "No autorizado. Debe iniciar sesión."


class Forbidden(AtmosError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Sin permisos para realizar esta acción."


class NotFound(AtmosError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Recurso no encontrado"


class Conflict(AtmosError):
    """Raised when a caller writes against a stale version."""

    status_code = status.HTTP_409_CONFLICT
    message = "La solicitud fue modificada por otro usuario"


class ValidationFailure(AtmosError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Datos inválidos"


class RequestInProgress(Conflict):
    """A mutation with the same Idempotency-Key is still being processed."""

    message = "La operación ya se está procesando"
    retry_after = 1


class PersistenceUnavailable(AtmosError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Error al acceder a la base de datos"


class AuthProviderUnavailable(AtmosError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Error al verificar autenticación."


class NetworkUnavailable(AtmosError):
    """Client side only: no network and no cached fallback."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Sin conexión"


class PrecacheFailed(NetworkUnavailable):
    """Client side only: the offline shell could not be fetched in full."""

    message = "No se pudo preparar el modo sin conexión"


__all__ = [
    "AtmosError",
    "Unauthenticated",
    "Forbidden",
    "NotFound",
    "Conflict",
    "ValidationFailure",
    "RequestInProgress",
    "PersistenceUnavailable",
    "AuthProviderUnavailable",
    "NetworkUnavailable",
    "PrecacheFailed",
]
