"""
FastAPI dependency providers.

Stores, the auth provider and services are assembled here so tests can swap
any of them through ``app.dependency_overrides``.
"""

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from atmos.core.database import get_db
from atmos.core.redis import CacheService, get_redis
from atmos.core.security import AuthProvider, Identity, SessionAuthProvider, authorize
from atmos.repositories.sqlalchemy import (
    SqlAlchemyBarrioStore,
    SqlAlchemySolicitudStore,
    SqlAlchemyUserStore,
)
from atmos.services.idempotency import IdempotencyStore
from atmos.services.reporting import ReportingService
from atmos.services.solicitudes import SolicitudService


async def get_user_store(db: AsyncSession = Depends(get_db)):
    return SqlAlchemyUserStore(db)


async def get_barrio_store(db: AsyncSession = Depends(get_db)):
    return SqlAlchemyBarrioStore(db)


async def get_solicitud_store(db: AsyncSession = Depends(get_db)):
    return SqlAlchemySolicitudStore(db)


async def get_auth_provider(users=Depends(get_user_store)) -> AuthProvider:
    return SessionAuthProvider(users)


async def get_solicitud_service(
    store=Depends(get_solicitud_store),
    barrios=Depends(get_barrio_store),
) -> SolicitudService:
    return SolicitudService(store, barrios)


async def get_reporting_service(store=Depends(get_solicitud_store)) -> ReportingService:
    return ReportingService(store)


async def get_idempotency_store(redis: Redis = Depends(get_redis)) -> IdempotencyStore:
    return IdempotencyStore(CacheService(redis, prefix="idempotency"))


async def get_current_user(
    request: Request,
    provider: AuthProvider = Depends(get_auth_provider),
) -> Identity:
    """Resolve the caller; any authenticated role passes."""
    return await authorize(request, provider)


def require_role(*allowed_roles: str):
    """
    Dependency factory for role-based access control.

    Example:
        @router.delete("")
        async def delete_many(user: Identity = Depends(require_role(UserRole.ADMIN))):
            ...
    """

    async def role_checker(
        request: Request,
        provider: AuthProvider = Depends(get_auth_provider),
    ) -> Identity:
        return await authorize(request, provider, allowed_roles)

    return role_checker
