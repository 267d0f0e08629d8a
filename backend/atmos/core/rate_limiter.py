"""SlowAPI rate limiting setup."""

from __future__ import annotations

from slowapi import Limiter, extension as slowapi_extension
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from atmos.core.config import settings


def _build_limiter() -> Limiter:
    try:
        return Limiter(
            key_func=get_remote_address,
            storage_uri=str(settings.REDIS_URL),
        )
    except Exception:  # pragma: no cover - fallback when Redis unavailable
        return Limiter(key_func=get_remote_address)


limiter = _build_limiter()


def _rate_limit_handler(request: Request, exc: Exception) -> JSONResponse:
    detail = getattr(exc, "detail", str(exc))
    response = JSONResponse(
        {"error": f"Demasiados intentos: {detail}"}, status_code=429
    )
    view_limit = getattr(request.state, "view_rate_limit", None)
    if view_limit is not None:
        response = limiter._inject_headers(response, view_limit)
    return response


slowapi_extension._rate_limit_exceeded_handler = _rate_limit_handler
