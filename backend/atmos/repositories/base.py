"""
Store capabilities used by the services.

Services never touch a database session directly; they receive a store
implementing one of these protocols. ``atmos.repositories.sqlalchemy`` holds
the PostgreSQL implementation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from atmos.models.solicitud import PaymentType, RequestStatus
from atmos.schemas.solicitudes import BarrioRecord, SolicitudRecord


class SortOrder(str, enum.Enum):
    CREATED_DESC = "-createdAt"
    REQUESTED_ASC = "fechaSolicitud"


@dataclass
class SolicitudQuery:
    """Filter over solicitudes; every populated field is ANDed."""

    estado: Optional[RequestStatus] = None
    estados: Optional[Sequence[RequestStatus]] = None
    barrio_id: Optional[str] = None
    tipo_pago: Optional[PaymentType] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    order: SortOrder = SortOrder.CREATED_DESC
    limit: Optional[int] = None


@dataclass
class Page:
    docs: List[SolicitudRecord]
    total_docs: int


@dataclass
class UserAccount:
    id: str
    email: str
    name: str
    role: str
    hashed_password: str
    is_active: bool = True


class SolicitudStore(Protocol):
    async def find(self, query: SolicitudQuery) -> Page: ...

    async def count(self, query: SolicitudQuery) -> int: ...

    async def find_by_id(self, solicitud_id: str) -> Optional[SolicitudRecord]: ...

    async def create(self, data: Dict[str, Any]) -> SolicitudRecord: ...

    async def update(
        self,
        solicitud_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> SolicitudRecord:
        """Apply ``changes`` and bump ``version``.

        Raises ``NotFound`` for unknown ids and ``Conflict`` when
        ``expected_version`` no longer matches.
        """
        ...

    async def delete(self, solicitud_id: str) -> bool: ...


class BarrioStore(Protocol):
    async def list(self, limit: Optional[int] = None) -> List[BarrioRecord]: ...

    async def find_by_id(self, barrio_id: str) -> Optional[BarrioRecord]: ...

    async def create(self, data: Dict[str, Any]) -> BarrioRecord: ...

    async def update(self, barrio_id: str, changes: Dict[str, Any]) -> BarrioRecord: ...

    async def delete(self, barrio_id: str) -> bool: ...


class UserStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[UserAccount]: ...

    async def find_by_id(self, user_id: str) -> Optional[UserAccount]: ...

    async def record_login(self, user_id: str) -> None: ...
