"""
Atmos dispatch backend - Main Application Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from atmos.api.router import api_router
from atmos.core.config import settings
from atmos.core.database import init_db
from atmos.core.errors import AtmosError
from atmos.core.logging import RequestContextMiddleware, setup_logging
from atmos.core.metrics import MetricsMiddleware
from atmos.core.rate_limiter import _rate_limit_handler, limiter
from atmos.core.redis import close_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown."""
    # Startup
    setup_logging()
    await init_db()
    yield
    # Shutdown
    await close_redis()


app = FastAPI(
    title="Atmos",
    description="Dispatch backend for the municipal atmospheric water service",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(AtmosError)
async def atmos_error_handler(request: Request, exc: AtmosError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            extra={"path": request.url.path, "error": exc.message},
        )
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(
        {"error": exc.message}, status_code=exc.status_code, headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Datos inválidos"
    return JSONResponse(
        {"error": message}, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("database_error", extra={"path": request.url.path})
    return JSONResponse(
        {"error": "Error al acceder a la base de datos"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


# Mount Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Include API routes
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    """Root endpoint with system information."""
    return {
        "service": "Atmos",
        "version": "1.0.0",
        "docs": "/api/docs",
        "health": f"{settings.API_PREFIX}/health/liveness",
        "metrics": "/metrics",
    }
