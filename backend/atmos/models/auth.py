"""
Authentication models for user management.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, String, Boolean, DateTime, func

from atmos.core.database import Base


class User(Base):
    """Dispatch tool user; ``email`` is the login identity."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="driver", index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    last_login_at = Column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<User(email={self.email}, role={self.role})>"
