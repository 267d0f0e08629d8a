"""
Solicitud lifecycle: legal status transitions and completion metadata.

    pendiente ──► en_camino ──► realizada
                           └──► no_realizada

Drivers must follow the arrows. Admins and dispatchers may move a solicitud
to any status (to correct bad data or cancel a mis-entered request). For every
role the completion metadata is kept consistent with the resulting status.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping, Optional

from atmos.core.errors import ValidationFailure
from atmos.core.security import UserRole
from atmos.models.solicitud import RequestStatus
from atmos.schemas.solicitudes import SolicitudRecord

TRANSITIONS: Mapping[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.EN_ROUTE}),
    RequestStatus.EN_ROUTE: frozenset(
        {RequestStatus.COMPLETED, RequestStatus.NOT_COMPLETED}
    ),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.NOT_COMPLETED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[RequestStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

OVERRIDE_ROLES: FrozenSet[str] = frozenset({UserRole.ADMIN, UserRole.DISPATCHER})


def can_transition(role: str, current: RequestStatus, target: RequestStatus) -> bool:
    """Whether ``role`` may move a solicitud from ``current`` to ``target``."""
    if current == target:
        return True
    if role in OVERRIDE_ROLES:
        return True
    return target in TRANSITIONS.get(current, frozenset())


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def apply_lifecycle(
    role: str,
    current: SolicitudRecord,
    changes: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Validate the status change in ``changes`` and complete its metadata.

    Returns a new change set in which:

    * entering ``realizada`` sets ``fecha_realizacion`` to ``now`` when none
      is supplied or already stored;
    * ``no_realizada`` requires a ``motivo_no_realizacion``;
    * metadata that does not belong to the resulting status is cleared.

    Raises:
        ValidationFailure: illegal transition for the role, or missing reason
    """
    result = dict(changes)
    target = result.get("estado") or current.estado
    if "estado" in result:
        result["estado"] = target

    if not can_transition(role, current.estado, target):
        raise ValidationFailure(
            f"Transición de estado inválida: {current.estado.value} → {target.value}"
        )

    def clear(field: str) -> None:
        if field in result or getattr(current, field) is not None:
            result[field] = None

    if target == RequestStatus.COMPLETED:
        if not _present(result.get("fecha_realizacion")):
            if current.estado == RequestStatus.COMPLETED and current.fecha_realizacion:
                result.pop("fecha_realizacion", None)
            else:
                result["fecha_realizacion"] = now or datetime.now(timezone.utc)
        clear("motivo_no_realizacion")
    elif target == RequestStatus.NOT_COMPLETED:
        motivo = result.get("motivo_no_realizacion", current.motivo_no_realizacion)
        if not _present(motivo):
            raise ValidationFailure("Debe indicar el motivo de no realización")
        clear("fecha_realizacion")
    else:
        clear("fecha_realizacion")
        clear("motivo_no_realizacion")

    return result
