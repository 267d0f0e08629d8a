"""
Convenience exports for API endpoint routers.

This allows ``from atmos.api.endpoints import solicitudes_router`` style
imports used by the aggregate router module.
"""

from .auth import router as auth_router
from .barrios import router as barrios_router
from .health import router as health_router
from .solicitudes import router as solicitudes_router

__all__ = [
    "auth_router",
    "barrios_router",
    "health_router",
    "solicitudes_router",
]
