"""
Application configuration using Pydantic Settings.
"""

from typing import List
from pydantic import PostgresDsn, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="allow"
    )

    # Environment
    ENVIRONMENT: str = "development"
    SECRET_KEY: str
    API_PREFIX: str = "/api"

    # Database
    DATABASE_URL: PostgresDsn

    # Redis
    REDIS_URL: RedisDsn
    REDIS_CACHE_TTL: int = 3600  # 1 hour default
    IDEMPOTENCY_TTL: int = 86400  # replayed mutation responses kept for 24h
    IDEMPOTENCY_LOCK_TTL: int = 60  # expiry of an in-flight reservation

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Sessions
    SESSION_COOKIE_NAME: str = "atmos-token"
    SESSION_MAX_AGE_DAYS: int = 7
    LOGIN_RATE_LIMIT: str = "10/minute"

    # Query limits
    SOLICITUDES_LIST_LIMIT: int = 100
    REPORT_LIMIT: int = 1000
    BARRIOS_LIMIT: int = 100

    # Reporting windows are computed in the municipality's local time
    TIMEZONE: str = "America/Argentina/Buenos_Aires"

    # Observability
    LOG_LEVEL: str = "INFO"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v

    @property
    def session_cookie_secure(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
