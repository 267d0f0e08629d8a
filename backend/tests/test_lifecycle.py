"""Status transitions and completion metadata."""

from datetime import datetime, timezone

import pytest

from atmos.core.errors import ValidationFailure
from atmos.core.security import UserRole
from atmos.models.solicitud import RequestStatus
from atmos.schemas.solicitudes import SolicitudRecord
from atmos.services.lifecycle import TERMINAL_STATUSES, apply_lifecycle, can_transition

NOW = datetime(2025, 3, 14, 15, 30, tzinfo=timezone.utc)


def _record(**fields) -> SolicitudRecord:
    base = {
        "id": "sol-1",
        "nombre": "Juan",
        "apellido": "Pérez",
        "telefono": "3794000000",
        "direccion": "Calle 1",
        "barrio_id": "barrio-centro",
        "created_at": NOW,
    }
    base.update(fields)
    return SolicitudRecord(**base)


class TestCanTransition:
    @pytest.mark.parametrize(
        "current,target",
        [
            (RequestStatus.PENDING, RequestStatus.EN_ROUTE),
            (RequestStatus.EN_ROUTE, RequestStatus.COMPLETED),
            (RequestStatus.EN_ROUTE, RequestStatus.NOT_COMPLETED),
        ],
    )
    def test_driver_follows_the_workflow(self, current, target):
        assert can_transition(UserRole.DRIVER, current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (RequestStatus.PENDING, RequestStatus.COMPLETED),
            (RequestStatus.PENDING, RequestStatus.NOT_COMPLETED),
            (RequestStatus.EN_ROUTE, RequestStatus.PENDING),
            (RequestStatus.COMPLETED, RequestStatus.EN_ROUTE),
            (RequestStatus.NOT_COMPLETED, RequestStatus.COMPLETED),
        ],
    )
    def test_driver_cannot_skip_or_go_back(self, current, target):
        assert not can_transition(UserRole.DRIVER, current, target)

    @pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.DISPATCHER])
    def test_office_roles_override(self, role):
        assert can_transition(role, RequestStatus.COMPLETED, RequestStatus.PENDING)
        assert can_transition(role, RequestStatus.PENDING, RequestStatus.NOT_COMPLETED)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {RequestStatus.COMPLETED, RequestStatus.NOT_COMPLETED}


class TestApplyLifecycle:
    def test_completion_sets_timestamp(self):
        current = _record(estado=RequestStatus.EN_ROUTE)

        changes = apply_lifecycle(
            UserRole.DRIVER, current, {"estado": RequestStatus.COMPLETED}, now=NOW
        )

        assert changes["estado"] == RequestStatus.COMPLETED
        assert changes["fecha_realizacion"] == NOW

    def test_completion_keeps_supplied_timestamp(self):
        supplied = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)
        current = _record(estado=RequestStatus.EN_ROUTE)

        changes = apply_lifecycle(
            UserRole.DRIVER,
            current,
            {"estado": RequestStatus.COMPLETED, "fecha_realizacion": supplied},
            now=NOW,
        )

        assert changes["fecha_realizacion"] == supplied

    def test_completion_clears_stale_reason(self):
        current = _record(estado=RequestStatus.NOT_COMPLETED, motivo_no_realizacion="Nadie en casa")

        changes = apply_lifecycle(
            UserRole.DISPATCHER, current, {"estado": RequestStatus.COMPLETED}, now=NOW
        )

        assert changes["motivo_no_realizacion"] is None
        assert changes["fecha_realizacion"] == NOW

    def test_not_completed_requires_reason(self):
        current = _record(estado=RequestStatus.EN_ROUTE)

        with pytest.raises(ValidationFailure):
            apply_lifecycle(UserRole.DRIVER, current, {"estado": RequestStatus.NOT_COMPLETED})

    def test_blank_reason_is_rejected_for_every_role(self):
        current = _record(estado=RequestStatus.EN_ROUTE)

        with pytest.raises(ValidationFailure):
            apply_lifecycle(
                UserRole.ADMIN,
                current,
                {"estado": RequestStatus.NOT_COMPLETED, "motivo_no_realizacion": "   "},
            )

    def test_not_completed_with_reason_clears_timestamp(self):
        current = _record(estado=RequestStatus.COMPLETED, fecha_realizacion=NOW)

        changes = apply_lifecycle(
            UserRole.ADMIN,
            current,
            {"estado": RequestStatus.NOT_COMPLETED, "motivo_no_realizacion": "Calle inundada"},
        )

        assert changes["fecha_realizacion"] is None
        assert changes["motivo_no_realizacion"] == "Calle inundada"

    def test_reopening_clears_all_metadata(self):
        current = _record(estado=RequestStatus.COMPLETED, fecha_realizacion=NOW)

        changes = apply_lifecycle(UserRole.ADMIN, current, {"estado": RequestStatus.PENDING})

        assert changes == {"estado": RequestStatus.PENDING, "fecha_realizacion": None}

    def test_driver_illegal_transition_fails(self):
        current = _record(estado=RequestStatus.PENDING)

        with pytest.raises(ValidationFailure):
            apply_lifecycle(UserRole.DRIVER, current, {"estado": RequestStatus.COMPLETED})

    def test_patch_without_status_keeps_invariants(self):
        current = _record(estado=RequestStatus.PENDING)

        changes = apply_lifecycle(
            UserRole.ADMIN, current, {"fecha_realizacion": NOW, "notas": "Portón verde"}
        )

        assert changes == {"fecha_realizacion": None, "notas": "Portón verde"}
