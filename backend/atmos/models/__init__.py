"""
SQLAlchemy database models.
"""

from atmos.models.auth import User
from atmos.models.barrio import Barrio
from atmos.models.solicitud import Solicitud, RequestStatus, PaymentType, ACTIVE_STATUSES

__all__ = [
    "User",
    "Barrio",
    "Solicitud",
    "RequestStatus",
    "PaymentType",
    "ACTIVE_STATUSES",
]
