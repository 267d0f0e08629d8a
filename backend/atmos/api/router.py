"""
API router - aggregates all endpoint routers.
"""

from fastapi import APIRouter

from atmos.api.endpoints import (
    auth_router,
    barrios_router,
    health_router,
    solicitudes_router,
)

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(barrios_router, tags=["barrios"])
api_router.include_router(
    solicitudes_router, prefix="/solicitudes", tags=["solicitudes"]
)
