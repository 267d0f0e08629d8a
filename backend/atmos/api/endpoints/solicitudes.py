"""
Solicitud endpoints: listing, creation, scoped updates, batch deletion,
reports and dashboard statistics.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from fastapi import APIRouter, Body, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse

from atmos.api.deps import (
    get_current_user,
    get_idempotency_store,
    get_reporting_service,
    get_solicitud_service,
    require_role,
)
from atmos.core.config import settings
from atmos.core.errors import ValidationFailure
from atmos.core.security import Identity, UserRole
from atmos.models.solicitud import RequestStatus
from atmos.repositories.base import SortOrder
from atmos.schemas.solicitudes import SolicitudCreate, SolicitudRecord
from atmos.services.idempotency import (
    IDEMPOTENCY_HEADER,
    REPLAY_HEADER,
    IdempotencyStore,
    StoredResponse,
)
from atmos.services.reporting import ReportingService
from atmos.services.solicitudes import SolicitudService

logger = logging.getLogger(__name__)

router = APIRouter()

OFFICE_ROLES = (UserRole.ADMIN, UserRole.DISPATCHER)


def _dump(record: SolicitudRecord) -> Dict[str, Any]:
    return record.model_dump(by_alias=True, mode="json")


def _parse_if_match(value: Optional[str]) -> Optional[int]:
    """Accept ``3``, ``"3"`` and ``W/"3"`` as version 3."""
    if value is None or not value.strip():
        return None
    cleaned = value.strip()
    if cleaned.startswith("W/"):
        cleaned = cleaned[2:]
    cleaned = cleaned.strip('"')
    try:
        return int(cleaned)
    except ValueError as exc:
        raise ValidationFailure("Cabecera If-Match inválida") from exc


async def _idempotent(
    request: Request,
    user: Identity,
    idempotency: IdempotencyStore,
    produce: Callable[[], Awaitable[Tuple[int, Dict[str, Any]]]],
) -> JSONResponse:
    """Run ``produce`` once per Idempotency-Key; replay the stored response after that."""
    key = request.headers.get(IDEMPOTENCY_HEADER)
    path = request.url.path
    stored = await idempotency.begin(user.id, request.method, path, key)
    if stored is not None:
        return JSONResponse(
            stored.body, status_code=stored.status_code, headers={REPLAY_HEADER: "true"}
        )

    try:
        status_code, body = await produce()
    except Exception:
        await idempotency.release(user.id, request.method, path, key)
        raise
    await idempotency.remember(
        user.id, request.method, path, key, StoredResponse(status_code, body)
    )
    return JSONResponse(body, status_code=status_code)


def _parse_choice(enum_class, value: Optional[str], param: str, default=None):
    """Blank query values mean "not given"; anything else must be a valid member."""
    if value is None or not value.strip():
        return default
    try:
        return enum_class(value.strip())
    except ValueError as exc:
        raise ValidationFailure(f"Valor inválido para {param}: {value}") from exc


@router.get("")
async def list_solicitudes(
    estado: Optional[str] = Query(None),
    activas: Optional[str] = Query(None),
    barrio: Optional[str] = Query(None),
    orden: Optional[str] = Query(None),
    user: Identity = Depends(get_current_user),
    service: SolicitudService = Depends(get_solicitud_service),
):
    """
    List solicitudes, newest first by default.

    ``activas=true`` returns the driver worklist (pendiente and en_camino);
    ``orden=fechaSolicitud`` sorts by requested date for dispatch. Empty
    parameters (``?estado=&barrio=``) apply no filter.
    """
    page = await service.list(
        estado=_parse_choice(RequestStatus, estado, "estado"),
        activas=activas == "true",
        barrio_id=barrio,
        order=_parse_choice(SortOrder, orden, "orden", SortOrder.CREATED_DESC),
        limit=settings.SOLICITUDES_LIST_LIMIT,
    )
    return {
        "success": True,
        "solicitudes": [_dump(doc) for doc in page.docs],
        "totalDocs": page.total_docs,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_solicitud(
    request: Request,
    payload: SolicitudCreate,
    user: Identity = Depends(require_role(*OFFICE_ROLES)),
    service: SolicitudService = Depends(get_solicitud_service),
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
):
    """Create a solicitud (admin/dispatcher). Status always starts as pendiente."""

    async def produce():
        record = await service.create(payload, user)
        return status.HTTP_201_CREATED, {"success": True, "solicitud": _dump(record)}

    return await _idempotent(request, user, idempotency, produce)


@router.delete("")
async def delete_solicitudes(
    request: Request,
    ids: List[str] = Query(default_factory=list),
    user: Identity = Depends(require_role(UserRole.ADMIN)),
    service: SolicitudService = Depends(get_solicitud_service),
):
    """
    Batch delete (admin only).

    Ids arrive as repeated ``ids`` parameters or in the
    ``where[id][in][n]=`` form used by the admin panel. Unknown ids are
    reported in ``failedIds`` without aborting the batch.
    """
    requested = list(ids)
    requested.extend(
        value
        for key, value in request.query_params.multi_items()
        if key.startswith("where[id][in]")
    )
    if not requested:
        raise ValidationFailure("Debe indicar al menos un id")

    result = await service.delete_many(requested)
    return {
        "success": True,
        "deleted": result.deleted,
        "deletedIds": result.deleted_ids,
        "failedIds": result.failed_ids,
    }


@router.get("/reporte")
async def get_report(
    periodo: Optional[str] = Query(None),
    tipoPago: Optional[str] = Query(None),
    fechaDesde: Optional[str] = Query(None),
    fechaHasta: Optional[str] = Query(None),
    user: Identity = Depends(require_role(*OFFICE_ROLES)),
    reporting: ReportingService = Depends(get_reporting_service),
):
    """Statistics and rows for a period or a custom date range."""
    report = await reporting.build_report(
        periodo=periodo,
        tipo_pago=tipoPago,
        fecha_desde=fechaDesde,
        fecha_hasta=fechaHasta,
    )
    return {"success": True, "reporte": report}


@router.get("/stats")
async def get_stats(
    user: Identity = Depends(require_role(*OFFICE_ROLES)),
    reporting: ReportingService = Depends(get_reporting_service),
):
    """Dashboard counters."""
    return {"success": True, "stats": await reporting.dashboard_stats()}


@router.get("/{solicitud_id}")
async def get_solicitud(
    solicitud_id: str,
    user: Identity = Depends(get_current_user),
    service: SolicitudService = Depends(get_solicitud_service),
):
    record = await service.get(solicitud_id)
    return JSONResponse(
        {"success": True, "solicitud": _dump(record)},
        headers={"ETag": f'"{record.version}"'},
    )


@router.patch("/{solicitud_id}")
async def update_solicitud(
    request: Request,
    solicitud_id: str,
    patch: Dict[str, Any] = Body(...),
    if_match: Optional[str] = Header(None),
    user: Identity = Depends(get_current_user),
    service: SolicitudService = Depends(get_solicitud_service),
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
):
    """
    Partially update a solicitud.

    Drivers may only change status, coordinates and completion metadata;
    other keys in their patch are ignored. Send ``If-Match: <version>`` to
    reject the write when someone else updated the solicitud first.
    """
    expected_version = _parse_if_match(if_match)

    async def produce():
        record = await service.update(
            solicitud_id, patch, user, expected_version=expected_version
        )
        return status.HTTP_200_OK, {"success": True, "solicitud": _dump(record)}

    return await _idempotent(request, user, idempotency, produce)
