"""
Barrio endpoints. Every authenticated role reads; only admins write.
"""

import logging

from fastapi import APIRouter, Depends, status

from atmos.api.deps import get_barrio_store, get_current_user, require_role
from atmos.core.config import settings
from atmos.core.errors import NotFound
from atmos.core.security import Identity, UserRole
from atmos.schemas.solicitudes import BarrioCreate, BarrioUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _dump(record) -> dict:
    return record.model_dump(by_alias=True, mode="json")


@router.get("/get-barrios")
async def get_barrios(
    user: Identity = Depends(get_current_user),
    barrios=Depends(get_barrio_store),
):
    """List barrios sorted by ``orden``."""
    records = await barrios.list(limit=settings.BARRIOS_LIMIT)
    return {"success": True, "barrios": [_dump(r) for r in records]}


@router.post("/barrios", status_code=status.HTTP_201_CREATED)
async def create_barrio(
    payload: BarrioCreate,
    user: Identity = Depends(require_role(UserRole.ADMIN)),
    barrios=Depends(get_barrio_store),
):
    record = await barrios.create(payload.model_dump())
    logger.info("barrio_created", extra={"barrio_id": record.id})
    return {"success": True, "barrio": _dump(record)}


@router.patch("/barrios/{barrio_id}")
async def update_barrio(
    barrio_id: str,
    payload: BarrioUpdate,
    user: Identity = Depends(require_role(UserRole.ADMIN)),
    barrios=Depends(get_barrio_store),
):
    record = await barrios.update(barrio_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "barrio": _dump(record)}


@router.delete("/barrios/{barrio_id}")
async def delete_barrio(
    barrio_id: str,
    user: Identity = Depends(require_role(UserRole.ADMIN)),
    barrios=Depends(get_barrio_store),
):
    if not await barrios.delete(barrio_id):
        raise NotFound("Barrio no encontrado")
    logger.info("barrio_deleted", extra={"barrio_id": barrio_id})
    return {"success": True}
