"""
Reporting: period windows, report rows and dashboard statistics.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, Optional
from zoneinfo import ZoneInfo

from atmos.core.config import settings
from atmos.core.errors import ValidationFailure
from atmos.models.solicitud import PaymentType, RequestStatus
from atmos.repositories.base import SolicitudQuery, SolicitudStore
from atmos.schemas.solicitudes import SolicitudRecord

logger = logging.getLogger(__name__)

PERIODS = ("dia", "semana", "mes", "año")
DEFAULT_PERIOD = "mes"
ALL_PAYMENT_TYPES = "todos"

_END_OF_DAY = time(23, 59, 59)


def local_tz() -> tzinfo:
    if settings.TIMEZONE.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(settings.TIMEZONE)


@dataclass
class ReportWindow:
    nombre: str
    desde: datetime
    hasta: datetime


def _parse_day(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise ValidationFailure(f"Fecha inválida en {field}: {value}") from exc


def report_window(
    periodo: Optional[str] = None,
    fecha_desde: Optional[str] = None,
    fecha_hasta: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReportWindow:
    """
    Compute the creation-date window of a report.

    A custom ``fecha_desde``/``fecha_hasta`` pair wins over ``periodo``.
    Otherwise the window runs from the start of the current day, week
    (Monday), month or year until the end of today. Unknown periods fall back
    to the current month.
    """
    tz = local_tz()
    now = (now or datetime.now(tz)).astimezone(tz)
    nombre = periodo or DEFAULT_PERIOD

    if fecha_desde and fecha_hasta:
        start_day = _parse_day(fecha_desde, "fechaDesde")
        end_day = _parse_day(fecha_hasta, "fechaHasta")
        if start_day > end_day:
            raise ValidationFailure("fechaDesde debe ser anterior a fechaHasta")
        return ReportWindow(
            nombre=nombre,
            desde=datetime.combine(start_day, time.min, tzinfo=tz),
            hasta=datetime.combine(end_day, _END_OF_DAY, tzinfo=tz),
        )

    today = now.date()
    if nombre == "dia":
        start_day = today
    elif nombre == "semana":
        start_day = today - timedelta(days=today.weekday())
    elif nombre == "año":
        start_day = today.replace(month=1, day=1)
    else:
        start_day = today.replace(day=1)

    return ReportWindow(
        nombre=nombre,
        desde=datetime.combine(start_day, time.min, tzinfo=tz),
        hasta=datetime.combine(today, _END_OF_DAY, tzinfo=tz),
    )


def success_rate(realizadas: int, no_realizadas: int) -> int:
    """Percentage of closed solicitudes that were actually serviced."""
    closed = realizadas + no_realizadas
    if closed == 0:
        return 0
    # Half-up rounding: 62.5 reads as 63 on the dashboard.
    return math.floor(realizadas / closed * 100 + 0.5)


def summarise(docs: Iterable[SolicitudRecord], total: int) -> Dict[str, int]:
    counts = {status: 0 for status in RequestStatus}
    payments = {payment: 0 for payment in PaymentType}
    for doc in docs:
        counts[doc.estado] += 1
        payments[doc.tipo_pago] += 1

    return {
        "total": total,
        "realizadas": counts[RequestStatus.COMPLETED],
        "noRealizadas": counts[RequestStatus.NOT_COMPLETED],
        "pendientes": counts[RequestStatus.PENDING],
        "enCamino": counts[RequestStatus.EN_ROUTE],
        "subsidiados": payments[PaymentType.SUBSIDIZED],
        "pagados": payments[PaymentType.PAID],
        "tasaExito": success_rate(
            counts[RequestStatus.COMPLETED], counts[RequestStatus.NOT_COMPLETED]
        ),
    }


def report_row(doc: SolicitudRecord) -> Dict[str, Any]:
    """Flattened row used by the report listing and spreadsheet export."""
    return {
        "id": doc.id,
        "nombre": doc.nombre,
        "apellido": doc.apellido,
        "telefono": doc.telefono,
        "direccion": doc.direccion,
        "barrio": doc.barrio_nombre or "",
        "tipoPago": doc.tipo_pago.value,
        "estado": doc.estado.value,
        "notas": doc.notas or "",
        "motivoNoRealizacion": doc.motivo_no_realizacion or "",
        "fechaRealizacion": doc.fecha_realizacion.isoformat() if doc.fecha_realizacion else "",
        "createdAt": doc.created_at.isoformat(),
        "updatedAt": doc.updated_at.isoformat() if doc.updated_at else None,
    }


class ReportingService:
    """Aggregates over the solicitud store for the office dashboard."""

    def __init__(self, store: SolicitudStore):
        self.store = store

    async def build_report(
        self,
        periodo: Optional[str] = None,
        tipo_pago: Optional[str] = None,
        fecha_desde: Optional[str] = None,
        fecha_hasta: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        window = report_window(periodo, fecha_desde, fecha_hasta, now=now)
        tipo_pago = tipo_pago or ALL_PAYMENT_TYPES

        query = SolicitudQuery(
            created_from=window.desde,
            created_to=window.hasta,
            limit=settings.REPORT_LIMIT,
        )
        if tipo_pago != ALL_PAYMENT_TYPES:
            try:
                query.tipo_pago = PaymentType(tipo_pago)
            except ValueError as exc:
                raise ValidationFailure(f"tipoPago inválido: {tipo_pago}") from exc

        page = await self.store.find(query)
        logger.info(
            "report_built",
            extra={"periodo": window.nombre, "tipo_pago": tipo_pago, "rows": len(page.docs)},
        )
        return {
            "periodo": {
                "nombre": window.nombre,
                "desde": window.desde.isoformat(),
                "hasta": window.hasta.isoformat(),
            },
            "filtros": {"tipoPago": tipo_pago},
            "estadisticas": summarise(page.docs, page.total_docs),
            "solicitudes": [report_row(doc) for doc in page.docs],
        }

    async def dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        tz = local_tz()
        now = (now or datetime.now(tz)).astimezone(tz)
        month_start = datetime.combine(now.date().replace(day=1), time.min, tzinfo=tz)

        count = self.store.count
        by_status = {
            status: await count(SolicitudQuery(estado=status)) for status in RequestStatus
        }
        realizadas = by_status[RequestStatus.COMPLETED]
        no_realizadas = by_status[RequestStatus.NOT_COMPLETED]

        return {
            "total": await count(SolicitudQuery()),
            "pendientes": by_status[RequestStatus.PENDING],
            "enCamino": by_status[RequestStatus.EN_ROUTE],
            "realizadas": realizadas,
            "noRealizadas": no_realizadas,
            "subsidiados": await count(SolicitudQuery(tipo_pago=PaymentType.SUBSIDIZED)),
            "pagados": await count(SolicitudQuery(tipo_pago=PaymentType.PAID)),
            "mes": {
                "total": await count(SolicitudQuery(created_from=month_start)),
                "realizadas": await count(
                    SolicitudQuery(
                        estado=RequestStatus.COMPLETED, created_from=month_start
                    )
                ),
            },
            "tasaExito": success_rate(realizadas, no_realizadas),
        }
