"""
Neighborhoods used to group and dispatch solicitudes.
"""

from uuid import uuid4

from sqlalchemy import Column, String, Integer, DateTime, func

from atmos.core.database import Base


class Barrio(Base):
    __tablename__ = "barrios"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    nombre = Column(String(255), unique=True, nullable=False)
    orden = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Barrio(nombre={self.nombre}, orden={self.orden})>"
