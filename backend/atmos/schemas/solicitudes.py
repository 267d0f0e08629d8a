"""
Pydantic schemas for solicitudes and barrios.

Python attributes use snake_case; the wire format is camelCase
(``tipoPago``, ``fechaRealizacion``...) and the barrio reference travels as
``barrio``. Records are what stores return and services hand back to the API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from atmos.models.solicitud import PaymentType, RequestStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _parse_coordinates(value: Optional[str]) -> Optional[str]:
    """Normalise a ``"lat, lon"`` pair; blank strings mean no coordinates."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2:
        raise ValueError("Formato de coordenadas: 'latitud, longitud'")
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise ValueError("Coordenadas no numéricas") from exc
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise ValueError("Coordenadas fuera de rango")
    return f"{parts[0]}, {parts[1]}"


class SolicitudCreate(CamelModel):
    """Creation payload. Any client supplied ``estado`` is ignored."""

    nombre: str = Field(min_length=1)
    apellido: str = Field(min_length=1)
    telefono: str = Field(min_length=1)
    direccion: str = Field(min_length=1)
    barrio_id: str = Field(alias="barrio", min_length=1)
    tipo_pago: PaymentType = PaymentType.SUBSIDIZED
    coordenadas: Optional[str] = None
    notas: Optional[str] = None
    fecha_solicitud: Optional[datetime] = None

    @field_validator("nombre", "apellido", "telefono", "direccion", mode="before")
    @classmethod
    def strip_required(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("coordenadas")
    @classmethod
    def check_coordinates(cls, v):
        return _parse_coordinates(v)


# Columns that may never be cleared once set.
NON_NULLABLE_FIELDS = frozenset(
    {"nombre", "apellido", "telefono", "direccion", "barrio_id", "tipo_pago", "estado"}
)


class SolicitudUpdate(CamelModel):
    """Partial update. Only keys explicitly sent are applied."""

    nombre: Optional[str] = Field(default=None, min_length=1)
    apellido: Optional[str] = Field(default=None, min_length=1)
    telefono: Optional[str] = Field(default=None, min_length=1)
    direccion: Optional[str] = Field(default=None, min_length=1)
    barrio_id: Optional[str] = Field(default=None, alias="barrio", min_length=1)
    tipo_pago: Optional[PaymentType] = None
    coordenadas: Optional[str] = None
    notas: Optional[str] = None
    estado: Optional[RequestStatus] = None
    fecha_realizacion: Optional[datetime] = None
    motivo_no_realizacion: Optional[str] = None
    fecha_solicitud: Optional[datetime] = None

    @field_validator("nombre", "apellido", "telefono", "direccion", mode="before")
    @classmethod
    def strip_required(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("coordenadas")
    @classmethod
    def check_coordinates(cls, v):
        return _parse_coordinates(v)

    @field_validator("motivo_no_realizacion", "notas")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def normalise_keys(cls, raw: Mapping[str, Any]) -> Dict[str, Any]:
        """Map wire aliases and python names to field names, dropping unknown keys."""
        lookup: Dict[str, str] = {}
        for name, field in cls.model_fields.items():
            lookup[name] = name
            if field.alias:
                lookup[field.alias] = name
        return {lookup[key]: value for key, value in raw.items() if key in lookup}


class SolicitudRecord(CamelModel):
    """A persisted solicitud as returned by a store."""

    id: str
    nombre: str
    apellido: str
    telefono: str
    direccion: str
    barrio_id: str = Field(alias="barrio")
    barrio_nombre: Optional[str] = None
    tipo_pago: PaymentType = PaymentType.SUBSIDIZED
    coordenadas: Optional[str] = None
    notas: Optional[str] = None
    estado: RequestStatus = RequestStatus.PENDING
    fecha_realizacion: Optional[datetime] = None
    motivo_no_realizacion: Optional[str] = None
    fecha_solicitud: Optional[datetime] = None
    version: int = 1
    created_at: datetime
    updated_at: Optional[datetime] = None


class BarrioCreate(BaseModel):
    nombre: str = Field(min_length=1)
    orden: int


class BarrioUpdate(BaseModel):
    nombre: Optional[str] = Field(default=None, min_length=1)
    orden: Optional[int] = None


class BarrioRecord(CamelModel):
    id: str
    nombre: str
    orden: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
