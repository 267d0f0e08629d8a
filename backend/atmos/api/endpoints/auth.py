"""
Session endpoints: login, logout and current identity.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr

from atmos.api.deps import get_auth_provider, get_user_store
from atmos.core.config import settings
from atmos.core.errors import Unauthenticated
from atmos.core.rate_limiter import limiter
from atmos.core.security import (
    AuthProvider,
    create_session_token,
    extract_token,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    """Login credentials."""

    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str


class LoginResponse(BaseModel):
    user: UserResponse


@router.post("/login", response_model=LoginResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
    users=Depends(get_user_store),
):
    """
    Authenticate with email and password.

    Sets a signed, httpOnly session cookie valid for
    ``SESSION_MAX_AGE_DAYS`` days.
    """
    account = await users.find_by_email(credentials.email)
    if (
        account is None
        or not account.is_active
        or not verify_password(credentials.password, account.hashed_password)
    ):
        logger.info("login_rejected", extra={"email": credentials.email})
        raise Unauthenticated("Credenciales inválidas")

    await users.record_login(account.id)
    token = create_session_token(account.id, account.role)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_MAX_AGE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )
    logger.info("login_succeeded", extra={"account_id": account.id, "role": account.role})

    return {
        "user": {
            "id": account.id,
            "email": account.email,
            "name": account.name or account.email,
            "role": account.role,
        }
    }


@router.post("/logout")
async def logout(response: Response):
    """Clear the session cookie."""
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/me", response_model=LoginResponse)
async def me(
    request: Request,
    provider: AuthProvider = Depends(get_auth_provider),
):
    """Return the identity behind the current session, or 401."""
    token = extract_token(request)
    identity = await provider.resolve(token) if token else None
    if identity is None:
        return JSONResponse({"user": None}, status_code=401)
    return {"user": identity.as_dict()}
