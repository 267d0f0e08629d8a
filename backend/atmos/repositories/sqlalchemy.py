"""
SQLAlchemy implementations of the store capabilities.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atmos.core.errors import Conflict, NotFound, PersistenceUnavailable
from atmos.models.auth import User
from atmos.models.barrio import Barrio
from atmos.models.solicitud import Solicitud
from atmos.repositories.base import (
    Page,
    SolicitudQuery,
    SortOrder,
    UserAccount,
)
from atmos.schemas.solicitudes import BarrioRecord, SolicitudRecord

logger = logging.getLogger(__name__)


def _translate_errors(func_):
    """Turn driver level failures into ``PersistenceUnavailable``."""

    @wraps(func_)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func_(self, *args, **kwargs)
        except IntegrityError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "store_failure",
                extra={"operation": func_.__qualname__, "error": str(exc)},
            )
            await self.db.rollback()
            raise PersistenceUnavailable() from exc

    return wrapper


def _solicitud_record(row: Solicitud) -> SolicitudRecord:
    return SolicitudRecord(
        id=row.id,
        nombre=row.nombre,
        apellido=row.apellido,
        telefono=row.telefono,
        direccion=row.direccion,
        barrio_id=row.barrio_id,
        barrio_nombre=row.barrio.nombre if row.barrio is not None else None,
        tipo_pago=row.tipo_pago,
        coordenadas=row.coordenadas,
        notas=row.notas,
        estado=row.estado,
        fecha_realizacion=row.fecha_realizacion,
        motivo_no_realizacion=row.motivo_no_realizacion,
        fecha_solicitud=row.fecha_solicitud,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _barrio_record(row: Barrio) -> BarrioRecord:
    return BarrioRecord(
        id=row.id,
        nombre=row.nombre,
        orden=row.orden,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlAlchemySolicitudStore:
    """Solicitud store backed by an ``AsyncSession``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _apply_filters(stmt, query: SolicitudQuery):
        if query.estado is not None:
            stmt = stmt.where(Solicitud.estado == query.estado)
        elif query.estados:
            stmt = stmt.where(Solicitud.estado.in_(list(query.estados)))
        if query.barrio_id:
            stmt = stmt.where(Solicitud.barrio_id == query.barrio_id)
        if query.tipo_pago is not None:
            stmt = stmt.where(Solicitud.tipo_pago == query.tipo_pago)
        if query.created_from is not None:
            stmt = stmt.where(Solicitud.created_at >= query.created_from)
        if query.created_to is not None:
            stmt = stmt.where(Solicitud.created_at <= query.created_to)
        return stmt

    @_translate_errors
    async def find(self, query: SolicitudQuery) -> Page:
        stmt = self._apply_filters(select(Solicitud), query)
        if query.order == SortOrder.REQUESTED_ASC:
            stmt = stmt.order_by(Solicitud.fecha_solicitud.asc(), Solicitud.created_at.asc())
        else:
            stmt = stmt.order_by(Solicitud.created_at.desc())
        if query.limit:
            stmt = stmt.limit(query.limit)

        result = await self.db.execute(stmt)
        docs = [_solicitud_record(row) for row in result.scalars().unique().all()]
        total = await self.count(query)
        return Page(docs=docs, total_docs=total)

    @_translate_errors
    async def count(self, query: SolicitudQuery) -> int:
        stmt = self._apply_filters(select(func.count(Solicitud.id)), query)
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    @_translate_errors
    async def find_by_id(self, solicitud_id: str) -> Optional[SolicitudRecord]:
        stmt = (
            select(Solicitud)
            .where(Solicitud.id == solicitud_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        row = result.scalars().unique().one_or_none()
        return _solicitud_record(row) if row else None

    @_translate_errors
    async def create(self, data: Dict[str, Any]) -> SolicitudRecord:
        row = Solicitud(**data)
        if row.fecha_solicitud is None:
            row.fecha_solicitud = datetime.now(timezone.utc)
        self.db.add(row)
        await self.db.commit()
        return await self.find_by_id(row.id)

    @_translate_errors
    async def update(
        self,
        solicitud_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> SolicitudRecord:
        stmt = update(Solicitud).where(Solicitud.id == solicitud_id)
        if expected_version is not None:
            stmt = stmt.where(Solicitud.version == expected_version)
        stmt = stmt.values(
            **changes,
            version=Solicitud.version + 1,
            updated_at=func.now(),
        ).execution_options(synchronize_session=False)

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            await self.db.rollback()
            if await self.find_by_id(solicitud_id) is None:
                raise NotFound("Solicitud no encontrada")
            raise Conflict()

        await self.db.commit()
        return await self.find_by_id(solicitud_id)

    @_translate_errors
    async def delete(self, solicitud_id: str) -> bool:
        result = await self.db.execute(
            delete(Solicitud).where(Solicitud.id == solicitud_id)
        )
        await self.db.commit()
        return result.rowcount > 0


class SqlAlchemyBarrioStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @_translate_errors
    async def list(self, limit: Optional[int] = None) -> List[BarrioRecord]:
        stmt = select(Barrio).order_by(Barrio.orden.asc(), Barrio.nombre.asc())
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return [_barrio_record(row) for row in result.scalars().all()]

    @_translate_errors
    async def find_by_id(self, barrio_id: str) -> Optional[BarrioRecord]:
        row = await self.db.get(Barrio, barrio_id)
        return _barrio_record(row) if row else None

    @_translate_errors
    async def create(self, data: Dict[str, Any]) -> BarrioRecord:
        row = Barrio(**data)
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict("Ya existe un barrio con ese nombre") from exc
        await self.db.refresh(row)
        return _barrio_record(row)

    @_translate_errors
    async def update(self, barrio_id: str, changes: Dict[str, Any]) -> BarrioRecord:
        row = await self.db.get(Barrio, barrio_id)
        if row is None:
            raise NotFound("Barrio no encontrado")
        for field, value in changes.items():
            setattr(row, field, value)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict("Ya existe un barrio con ese nombre") from exc
        await self.db.refresh(row)
        return _barrio_record(row)

    @_translate_errors
    async def delete(self, barrio_id: str) -> bool:
        try:
            result = await self.db.execute(delete(Barrio).where(Barrio.id == barrio_id))
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict("El barrio tiene solicitudes asociadas") from exc
        return result.rowcount > 0


def _account(row: User) -> UserAccount:
    return UserAccount(
        id=row.id,
        email=row.email,
        name=row.name,
        role=row.role,
        hashed_password=row.hashed_password,
        is_active=row.is_active,
    )


class SqlAlchemyUserStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @_translate_errors
    async def find_by_email(self, email: str) -> Optional[UserAccount]:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        return _account(row) if row else None

    @_translate_errors
    async def find_by_id(self, user_id: str) -> Optional[UserAccount]:
        row = await self.db.get(User, user_id)
        return _account(row) if row else None

    @_translate_errors
    async def record_login(self, user_id: str) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(last_login_at=datetime.now(timezone.utc))
        )
        await self.db.commit()
