"""
Tests for SolicitudService: creation, scoped updates and batch deletion.
"""

import pytest

from atmos.core.errors import Conflict, NotFound, PersistenceUnavailable, ValidationFailure
from atmos.core.security import Identity, UserRole
from atmos.models.solicitud import PaymentType, RequestStatus
from atmos.repositories.base import SortOrder
from atmos.schemas.solicitudes import SolicitudCreate
from atmos.services.solicitudes import SolicitudService
from tests.conftest import CENTRO, NORTE

ADMIN = Identity(id="u-admin", email="admin@municipio.gob.ar", name="Ana", role=UserRole.ADMIN)
DISPATCHER = Identity(id="u-disp", email="despacho@municipio.gob.ar", name="Diego", role=UserRole.DISPATCHER)
DRIVER = Identity(id="u-driver", email="chofer@municipio.gob.ar", name="Carla", role=UserRole.DRIVER)


@pytest.fixture
def service(solicitud_store, barrio_store):
    return SolicitudService(solicitud_store, barrio_store)


class TestCreate:
    @pytest.mark.asyncio
    async def test_status_is_forced_to_pending(self, service):
        payload = SolicitudCreate.model_validate(
            {
                "nombre": " María ",
                "apellido": "Gómez",
                "telefono": "3794111111",
                "direccion": "Junín 1200",
                "barrio": CENTRO,
                "tipoPago": "pagado",
                "estado": "realizada",
            }
        )

        record = await service.create(payload, DISPATCHER)

        assert record.estado == RequestStatus.PENDING
        assert record.nombre == "María"
        assert record.tipo_pago == PaymentType.PAID
        assert record.fecha_solicitud is not None
        assert record.fecha_realizacion is None

    @pytest.mark.asyncio
    async def test_unknown_barrio_is_rejected(self, service):
        payload = SolicitudCreate(
            nombre="María", apellido="Gómez", telefono="1", direccion="x", barrio="nowhere"
        )

        with pytest.raises(ValidationFailure):
            await service.create(payload, ADMIN)


class TestList:
    @pytest.mark.asyncio
    async def test_activas_returns_worklist_in_dispatch_order(self, service, solicitud_store):
        from datetime import datetime, timezone

        late = solicitud_store.seed(
            CENTRO, fecha_solicitud=datetime(2025, 3, 2, tzinfo=timezone.utc)
        )
        early = solicitud_store.seed(
            NORTE,
            estado=RequestStatus.EN_ROUTE,
            fecha_solicitud=datetime(2025, 3, 1, tzinfo=timezone.utc),
        )
        solicitud_store.seed(CENTRO, estado=RequestStatus.COMPLETED)

        page = await service.list(activas=True, order=SortOrder.REQUESTED_ASC)

        assert [doc.id for doc in page.docs] == [early.id, late.id]
        assert page.total_docs == 2

    @pytest.mark.asyncio
    async def test_estado_and_barrio_filters(self, service, solicitud_store):
        match = solicitud_store.seed(NORTE)
        solicitud_store.seed(CENTRO)
        solicitud_store.seed(NORTE, estado=RequestStatus.EN_ROUTE)

        page = await service.list(estado=RequestStatus.PENDING, barrio_id=NORTE)

        assert [doc.id for doc in page.docs] == [match.id]

    @pytest.mark.asyncio
    async def test_store_outage_is_not_an_empty_list(self, service, solicitud_store):
        solicitud_store.unavailable = True

        with pytest.raises(PersistenceUnavailable):
            await service.list()


class TestUpdate:
    @pytest.mark.asyncio
    async def test_driver_extra_fields_are_ignored(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO, nombre="Juan")

        record = await service.update(
            existing.id, {"nombre": "Hacker", "estado": "en_camino"}, DRIVER
        )

        assert record.nombre == "Juan"
        assert record.estado == RequestStatus.EN_ROUTE
        assert record.version == existing.version + 1

    @pytest.mark.asyncio
    async def test_driver_patch_with_only_disallowed_fields_is_a_no_op(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO, nombre="Juan")

        record = await service.update(existing.id, {"nombre": "Hacker", "tipoPago": "pagado"}, DRIVER)

        assert record == existing

    @pytest.mark.asyncio
    async def test_driver_completion_records_time(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO, estado=RequestStatus.EN_ROUTE)

        record = await service.update(existing.id, {"estado": "realizada"}, DRIVER)

        assert record.estado == RequestStatus.COMPLETED
        assert record.fecha_realizacion is not None
        assert record.motivo_no_realizacion is None

    @pytest.mark.asyncio
    async def test_driver_cannot_skip_en_camino(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO)

        with pytest.raises(ValidationFailure):
            await service.update(existing.id, {"estado": "realizada"}, DRIVER)

    @pytest.mark.asyncio
    async def test_driver_failure_requires_reason(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO, estado=RequestStatus.EN_ROUTE)

        with pytest.raises(ValidationFailure):
            await service.update(existing.id, {"estado": "no_realizada"}, DRIVER)

        record = await service.update(
            existing.id,
            {"estado": "no_realizada", "motivoNoRealizacion": "No había nadie"},
            DRIVER,
        )
        assert record.motivo_no_realizacion == "No había nadie"

    @pytest.mark.asyncio
    async def test_driver_sets_coordinates_once(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO, estado=RequestStatus.EN_ROUTE)

        first = await service.update(existing.id, {"coordenadas": "-27.4692, -58.8306"}, DRIVER)
        second = await service.update(existing.id, {"coordenadas": "-27.5, -58.9"}, DRIVER)

        assert first.coordenadas == "-27.4692, -58.8306"
        assert second.coordenadas == "-27.4692, -58.8306"

    @pytest.mark.asyncio
    async def test_dispatcher_may_correct_coordinates(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO, coordenadas="-27.4692, -58.8306")

        record = await service.update(existing.id, {"coordenadas": "-27.5, -58.9"}, DISPATCHER)

        assert record.coordenadas == "-27.5, -58.9"

    @pytest.mark.asyncio
    async def test_dispatcher_override_and_full_edit(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO)

        record = await service.update(
            existing.id,
            {"estado": "realizada", "nombre": "Juana", "barrio": NORTE},
            DISPATCHER,
        )

        assert record.estado == RequestStatus.COMPLETED
        assert record.nombre == "Juana"
        assert record.barrio_id == NORTE
        assert record.barrio_nombre == "Norte"
        assert record.fecha_realizacion is not None

    @pytest.mark.asyncio
    async def test_invalid_values_are_validation_failures(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO)

        with pytest.raises(ValidationFailure):
            await service.update(existing.id, {"estado": "volando"}, ADMIN)
        with pytest.raises(ValidationFailure):
            await service.update(existing.id, {"coordenadas": "norte"}, ADMIN)
        with pytest.raises(ValidationFailure):
            await service.update(existing.id, {"nombre": None}, ADMIN)
        with pytest.raises(ValidationFailure):
            await service.update(existing.id, {"barrio": "nowhere"}, ADMIN)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["nombre", "apellido", "telefono", "direccion"])
    @pytest.mark.parametrize("blank", ["", "   "])
    async def test_office_cannot_blank_required_fields(self, service, solicitud_store, field, blank):
        existing = solicitud_store.seed(CENTRO, nombre="Juan")

        with pytest.raises(ValidationFailure) as excinfo:
            await service.update(existing.id, {field: blank}, ADMIN)

        assert field in str(excinfo.value)
        assert solicitud_store.rows[existing.id] == existing

    @pytest.mark.asyncio
    async def test_office_edits_are_trimmed(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO)

        record = await service.update(existing.id, {"direccion": "  Junín 1200 "}, DISPATCHER)

        assert record.direccion == "Junín 1200"

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_found(self, service):
        with pytest.raises(NotFound):
            await service.update("missing", {"estado": "en_camino"}, ADMIN)

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO)
        await service.update(existing.id, {"notas": "Llamar antes"}, DISPATCHER)

        with pytest.raises(Conflict):
            await service.update(
                existing.id, {"estado": "en_camino"}, DRIVER, expected_version=existing.version
            )

    @pytest.mark.asyncio
    async def test_without_version_last_write_wins(self, service, solicitud_store):
        existing = solicitud_store.seed(CENTRO)
        await service.update(existing.id, {"notas": "Primera"}, DISPATCHER)

        record = await service.update(existing.id, {"notas": "Segunda"}, ADMIN)

        assert record.notas == "Segunda"
        assert record.version == existing.version + 2


class TestDeleteMany:
    @pytest.mark.asyncio
    async def test_unknown_ids_are_reported_not_fatal(self, service, solicitud_store):
        first = solicitud_store.seed(CENTRO)
        second = solicitud_store.seed(NORTE)

        result = await service.delete_many([first.id, "does-not-exist", second.id])

        assert result.deleted == 2
        assert result.deleted_ids == [first.id, second.id]
        assert result.failed_ids == ["does-not-exist"]
        assert solicitud_store.rows == {}

    @pytest.mark.asyncio
    async def test_per_id_store_failure_does_not_abort_batch(self, service, solicitud_store):
        first = solicitud_store.seed(CENTRO)
        second = solicitud_store.seed(CENTRO)
        solicitud_store.fail_on_delete.add(first.id)

        result = await service.delete_many([first.id, second.id, second.id])

        assert result.deleted_ids == [second.id]
        assert result.failed_ids == [first.id]
