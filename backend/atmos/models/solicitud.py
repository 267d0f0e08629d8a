"""
Service request ("solicitud") model and its enumerations.
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    Enum as SQLEnum,
    func,
)
from sqlalchemy.orm import relationship

from atmos.core.database import Base


class RequestStatus(str, enum.Enum):
    """Workflow states of a solicitud."""

    PENDING = "pendiente"
    EN_ROUTE = "en_camino"
    COMPLETED = "realizada"
    NOT_COMPLETED = "no_realizada"


ACTIVE_STATUSES = (RequestStatus.PENDING, RequestStatus.EN_ROUTE)


class PaymentType(str, enum.Enum):
    """Billing class of a solicitud."""

    SUBSIDIZED = "subsidiado"
    PAID = "pagado"


class Solicitud(Base):
    """
    A citizen request for an atmospheric truck visit.
    """

    __tablename__ = "solicitudes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Requester
    nombre = Column(String(255), nullable=False, index=True)
    apellido = Column(String(255), nullable=False)
    telefono = Column(String(50), nullable=False)

    # Location
    direccion = Column(String(512), nullable=False)
    barrio_id = Column(
        String(36), ForeignKey("barrios.id"), nullable=False, index=True
    )
    coordenadas = Column(String(64))  # "lat, lon"

    tipo_pago = Column(
        SQLEnum(PaymentType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentType.SUBSIDIZED,
        index=True,
    )
    notas = Column(Text)

    # Workflow
    estado = Column(
        SQLEnum(RequestStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    fecha_realizacion = Column(DateTime(timezone=True))
    motivo_no_realizacion = Column(Text)

    fecha_solicitud = Column(DateTime(timezone=True), index=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    barrio = relationship("Barrio", lazy="joined")

    def __repr__(self) -> str:
        return f"<Solicitud(id={self.id}, estado={self.estado})>"
