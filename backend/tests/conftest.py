"""
Pytest configuration and fixtures.
"""
from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from atmos.core.security import UserRole, create_session_token
from atmos.repositories.base import UserAccount
from tests.fakes import (
    InMemoryBarrioStore,
    InMemoryRedis,
    InMemorySolicitudStore,
    InMemoryUserStore,
)

CENTRO = "barrio-centro"
NORTE = "barrio-norte"


def auth_headers(account: UserAccount) -> Dict[str, str]:
    """Bearer header carrying a fresh session token for ``account``."""
    token = create_session_token(account.id, account.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def barrio_store() -> InMemoryBarrioStore:
    store = InMemoryBarrioStore()
    store.add("Centro", 1, CENTRO)
    store.add("Norte", 2, NORTE)
    return store


@pytest.fixture
def solicitud_store(barrio_store) -> InMemorySolicitudStore:
    return InMemorySolicitudStore(barrio_store)


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def users(user_store) -> Dict[str, UserAccount]:
    return {
        UserRole.ADMIN: user_store.add("admin@municipio.gob.ar", UserRole.ADMIN, name="Ana Admin"),
        UserRole.DISPATCHER: user_store.add(
            "despacho@municipio.gob.ar", UserRole.DISPATCHER, name="Diego Despacho"
        ),
        UserRole.DRIVER: user_store.add(
            "chofer@municipio.gob.ar", UserRole.DRIVER, name="Carla Chofer"
        ),
    }


@pytest.fixture
def headers_for(users):
    """``headers_for(UserRole.DRIVER)`` -> auth headers for that role's user."""

    def _headers(role: str) -> Dict[str, str]:
        return auth_headers(users[role])

    return _headers


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest_asyncio.fixture
async def api_client(
    monkeypatch, barrio_store, solicitud_store, user_store, fake_redis
) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX AsyncClient configured against the FastAPI app with test overrides."""
    from atmos.main import app
    from atmos.api import deps
    from atmos.core.database import get_db
    from atmos.core.redis import get_redis
    from atmos.core.rate_limiter import limiter
    import atmos.core.rate_limiter as rate_limit_module
    from slowapi import extension as slowapi_extension

    class StubResult:
        def scalar(self):
            return 1

    class StubSession:
        async def execute(self, *_args, **_kwargs):
            return StubResult()

        async def close(self):
            return None

    async def override_db():
        session = StubSession()
        try:
            yield session
        finally:
            await session.close()

    async def override_redis():
        return fake_redis

    async def _init_db_stub():
        return None

    monkeypatch.setattr("atmos.main.init_db", _init_db_stub)
    previous_storage, previous_strategy = limiter._storage, limiter._limiter
    limiter._storage = MemoryStorage()
    limiter._limiter = FixedWindowRateLimiter(limiter._storage)
    limiter.reset()
    monkeypatch.setattr(
        slowapi_extension,
        "_rate_limit_exceeded_handler",
        rate_limit_module._rate_limit_handler,
    )

    overrides = {
        get_db: override_db,
        get_redis: override_redis,
        deps.get_barrio_store: lambda: barrio_store,
        deps.get_solicitud_store: lambda: solicitud_store,
        deps.get_user_store: lambda: user_store,
    }
    app.dependency_overrides.update(overrides)
    app.state.test_db_override = override_db
    app.state.test_redis_override = override_redis

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)
        for attr in ("test_db_override", "test_redis_override"):
            if hasattr(app.state, attr):
                delattr(app.state, attr)
        limiter._storage, limiter._limiter = previous_storage, previous_strategy
