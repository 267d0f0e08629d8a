"""
Solicitud service: creation, queries, scoped updates and batch deletion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from atmos.core.errors import (
    Conflict,
    NotFound,
    PersistenceUnavailable,
    ValidationFailure,
)
from atmos.core.metrics import record_transition
from atmos.core.security import Identity, UserRole
from atmos.models.solicitud import ACTIVE_STATUSES, RequestStatus
from atmos.repositories.base import (
    BarrioStore,
    Page,
    SolicitudQuery,
    SolicitudStore,
    SortOrder,
)
from atmos.schemas.solicitudes import (
    NON_NULLABLE_FIELDS,
    SolicitudCreate,
    SolicitudRecord,
    SolicitudUpdate,
)
from atmos.services.field_scope import scope_patch
from atmos.services.lifecycle import apply_lifecycle

logger = logging.getLogger(__name__)


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "")


@dataclass
class DeleteResult:
    deleted_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)

    @property
    def deleted(self) -> int:
        return len(self.deleted_ids)


class SolicitudService:
    """
    Business operations over solicitudes.

    Authorization has already happened when these methods run; the caller's
    identity is passed in only where the outcome depends on the role.
    """

    def __init__(self, store: SolicitudStore, barrios: BarrioStore):
        self.store = store
        self.barrios = barrios

    async def _require_barrio(self, barrio_id: str) -> None:
        if await self.barrios.find_by_id(barrio_id) is None:
            raise ValidationFailure(f"Barrio inexistente: {barrio_id}")

    async def create(self, payload: SolicitudCreate, actor: Identity) -> SolicitudRecord:
        """Persist a new solicitud. Its status always starts as pendiente."""
        await self._require_barrio(payload.barrio_id)

        data = payload.model_dump()
        data["estado"] = RequestStatus.PENDING
        if data.get("fecha_solicitud") is None:
            data["fecha_solicitud"] = datetime.now(timezone.utc)

        record = await self.store.create(data)
        logger.info(
            "solicitud_created",
            extra={"solicitud_id": record.id, "actor_role": actor.role},
        )
        return record

    async def get(self, solicitud_id: str) -> SolicitudRecord:
        record = await self.store.find_by_id(solicitud_id)
        if record is None:
            raise NotFound("Solicitud no encontrada")
        return record

    async def list(
        self,
        estado: Optional[RequestStatus] = None,
        activas: bool = False,
        barrio_id: Optional[str] = None,
        order: SortOrder = SortOrder.CREATED_DESC,
        limit: Optional[int] = None,
    ) -> Page:
        """
        List solicitudes.

        An explicit ``estado`` wins over ``activas``, which restricts the
        listing to the driver worklist (pendiente and en_camino).
        """
        query = SolicitudQuery(barrio_id=barrio_id or None, order=order, limit=limit)
        if estado is not None:
            query.estado = estado
        elif activas:
            query.estados = ACTIVE_STATUSES
        return await self.store.find(query)

    async def update(
        self,
        solicitud_id: str,
        raw_patch: Mapping[str, Any],
        actor: Identity,
        expected_version: Optional[int] = None,
    ) -> SolicitudRecord:
        """
        Apply a partial update on behalf of ``actor``.

        The patch is narrowed to the fields the actor's role may write, then
        validated. Drivers cannot overwrite coordinates already on record and
        must follow the status workflow. A patch that ends up empty returns
        the current record untouched.
        """
        scoped = scope_patch(actor.role, SolicitudUpdate.normalise_keys(raw_patch))
        try:
            parsed = SolicitudUpdate.model_validate(scoped)
        except ValidationError as exc:
            raise ValidationFailure(_describe(exc)) from exc
        changes = parsed.model_dump(exclude_unset=True)

        cleared = sorted(k for k in NON_NULLABLE_FIELDS if k in changes and changes[k] is None)
        if cleared:
            raise ValidationFailure(f"Campos obligatorios: {', '.join(cleared)}")

        current = await self.get(solicitud_id)
        if expected_version is not None and expected_version != current.version:
            raise Conflict()

        if (
            actor.role not in (UserRole.ADMIN, UserRole.DISPATCHER)
            and current.coordenadas
            and "coordenadas" in changes
        ):
            changes.pop("coordenadas")

        if "barrio_id" in changes and changes["barrio_id"] != current.barrio_id:
            await self._require_barrio(changes["barrio_id"])

        changes = apply_lifecycle(actor.role, current, changes)
        changes = {
            key: value for key, value in changes.items() if getattr(current, key) != value
        }
        if not changes:
            return current

        record = await self.store.update(
            solicitud_id, changes, expected_version=expected_version
        )

        if record.estado != current.estado:
            record_transition(current.estado.value, record.estado.value, actor.role)
            logger.info(
                "solicitud_transition",
                extra={
                    "solicitud_id": solicitud_id,
                    "from_status": current.estado.value,
                    "to_status": record.estado.value,
                    "actor_role": actor.role,
                },
            )
        return record

    async def delete_many(self, ids: Sequence[str]) -> DeleteResult:
        """
        Delete every id it can; unknown ids or per-id failures are reported
        in ``failed_ids`` without aborting the rest of the batch.
        """
        result = DeleteResult()
        for solicitud_id in dict.fromkeys(i for i in ids if i):
            try:
                deleted = await self.store.delete(solicitud_id)
            except PersistenceUnavailable as exc:
                logger.error(
                    "solicitud_delete_failed",
                    extra={"solicitud_id": solicitud_id, "error": str(exc)},
                )
                deleted = False
            if deleted:
                result.deleted_ids.append(solicitud_id)
            else:
                result.failed_ids.append(solicitud_id)

        logger.info(
            "solicitudes_deleted",
            extra={"deleted": result.deleted, "failed": len(result.failed_ids)},
        )
        return result
