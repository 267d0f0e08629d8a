"""
Authentication and authorization: password hashing, session tokens and the
authorization gate every protected endpoint goes through.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Protocol

import jwt
from fastapi import Request
from passlib.context import CryptContext

from atmos.core.config import settings
from atmos.core.errors import (
    AtmosError,
    AuthProviderUnavailable,
    Forbidden,
    Unauthenticated,
)
from atmos.core.logging import user_id_ctx

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT configuration
ALGORITHM = "HS256"


class UserRole:
    """User roles for RBAC."""

    ADMIN = "admin"
    DISPATCHER = "dispatcher"
    DRIVER = "driver"

    ALL_ROLES = [ADMIN, DISPATCHER, DRIVER]


@dataclass(frozen=True)
class Identity:
    """The resolved caller of a request."""

    id: str
    email: str
    name: str
    role: str

    def as_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name, "role": self.role}


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(
    user_id: str, role: str, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed session token.

    Args:
        user_id: Subject of the token
        role: Role at login time (informational; the gate re-reads it)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT string
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_session_token(token: str) -> Optional[dict]:
    """Return the token payload, or ``None`` if it is invalid or expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def extract_token(request: Request) -> Optional[str]:
    """Read the session token from the cookie or a Bearer header."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


class AuthProvider(Protocol):
    """Maps a session token to an identity."""

    async def resolve(self, token: str) -> Optional[Identity]: ...


class SessionAuthProvider:
    """
    Resolves signed session tokens against the user store.

    The role is always read from the store, so a demoted user loses access
    without waiting for the token to expire.
    """

    def __init__(self, users):
        self.users = users

    async def resolve(self, token: str) -> Optional[Identity]:
        payload = decode_session_token(token)
        if not payload or not payload.get("sub"):
            return None

        try:
            account = await self.users.find_by_id(str(payload["sub"]))
        except AtmosError as exc:
            raise AuthProviderUnavailable() from exc

        if account is None or not account.is_active:
            return None
        return Identity(
            id=account.id,
            email=account.email,
            name=account.name or account.email,
            role=account.role,
        )


async def authorize(
    request: Request,
    provider: AuthProvider,
    allowed_roles: Optional[Iterable[str]] = None,
) -> Identity:
    """
    The authorization gate.

    Raises:
        Unauthenticated: no token, or the token does not resolve to a user
        Forbidden: the user's role is not in ``allowed_roles``
        AuthProviderUnavailable: the provider itself failed
    """
    token = extract_token(request)
    if not token:
        raise Unauthenticated()

    identity = await provider.resolve(token)
    if identity is None:
        raise Unauthenticated()

    user_id_ctx.set(identity.id)
    if allowed_roles is not None:
        allowed = set(allowed_roles)
        if allowed and identity.role not in allowed:
            raise Forbidden()
    return identity
