"""
API client used by the driver app.

Reads go through whatever transport the client was built with (normally an
``OfflineTransport``, so the last known worklist survives a dead network).
Status updates that cannot reach the server are queued in the outbox and
replayed by ``sync``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from atmos.core.errors import (
    AtmosError,
    Conflict,
    Forbidden,
    NotFound,
    Unauthenticated,
    ValidationFailure,
)
from atmos.models.solicitud import RequestStatus
from atmos.offline.cache import CACHE_EXTENSION
from atmos.offline.sync import PendingMutation, PendingMutationQueue, SyncManager, SyncResult
from atmos.services.idempotency import IDEMPOTENCY_HEADER

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS = {
    401: Unauthenticated,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
    422: ValidationFailure,
}


def _raise_for_error(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    try:
        message = response.json().get("error")
    except ValueError:
        message = None
    error_class = _ERRORS_BY_STATUS.get(response.status_code)
    if error_class is not None:
        raise error_class(message)
    error = AtmosError(message or response.reason_phrase)
    error.status_code = response.status_code
    raise error


@dataclass
class Worklist:
    solicitudes: List[Dict[str, Any]]
    total: int
    from_cache: bool = False


class DriverClient:
    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        outbox: Optional[PendingMutationQueue] = None,
        sync_wait=None,
    ):
        self.http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=30.0)
        self.outbox = outbox
        self.syncer = SyncManager(outbox, self.http, wait=sync_wait) if outbox is not None else None

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "DriverClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        response = await self.http.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        _raise_for_error(response)
        return response.json()["user"]

    async def logout(self) -> None:
        response = await self.http.post("/api/auth/logout")
        _raise_for_error(response)

    async def me(self) -> Optional[Dict[str, Any]]:
        response = await self.http.get("/api/auth/me")
        if response.status_code == 401:
            return None
        _raise_for_error(response)
        return response.json()["user"]

    async def barrios(self) -> List[Dict[str, Any]]:
        response = await self.http.get("/api/get-barrios")
        _raise_for_error(response)
        return response.json()["barrios"]

    async def worklist(self, barrio: Optional[str] = None) -> Worklist:
        """Active solicitudes in dispatch order; served from cache when offline."""
        params = {"activas": "true", "orden": "fechaSolicitud"}
        if barrio:
            params["barrio"] = barrio
        response = await self.http.get("/api/solicitudes", params=params)
        _raise_for_error(response)
        body = response.json()
        return Worklist(
            solicitudes=body["solicitudes"],
            total=body["totalDocs"],
            from_cache=CACHE_EXTENSION in response.extensions,
        )

    async def get(self, solicitud_id: str) -> Dict[str, Any]:
        response = await self.http.get(f"/api/solicitudes/{solicitud_id}")
        _raise_for_error(response)
        return response.json()["solicitud"]

    async def update(
        self,
        solicitud_id: str,
        changes: Dict[str, Any],
        version: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        PATCH a solicitud. Returns the updated solicitud, or ``None`` when the
        network was unreachable and the change was queued for the next sync.
        """
        mutation = PendingMutation(
            method="PATCH",
            url=f"/api/solicitudes/{solicitud_id}",
            json=changes,
            headers={"If-Match": str(version)} if version is not None else {},
        )
        headers = dict(mutation.headers)
        headers[IDEMPOTENCY_HEADER] = mutation.idempotency_key
        try:
            response = await self.http.patch(mutation.url, json=changes, headers=headers)
        except httpx.TransportError:
            if self.outbox is None:
                raise
            await self.outbox.enqueue(mutation)
            logger.info("driver_update_queued", extra={"solicitud_id": solicitud_id})
            return None
        _raise_for_error(response)
        return response.json()["solicitud"]

    async def start_route(self, solicitud_id: str, **kwargs) -> Optional[Dict[str, Any]]:
        return await self.update(solicitud_id, {"estado": RequestStatus.EN_ROUTE.value}, **kwargs)

    async def complete(
        self, solicitud_id: str, coordenadas: Optional[str] = None, **kwargs
    ) -> Optional[Dict[str, Any]]:
        changes: Dict[str, Any] = {"estado": RequestStatus.COMPLETED.value}
        if coordenadas:
            changes["coordenadas"] = coordenadas
        return await self.update(solicitud_id, changes, **kwargs)

    async def report_failure(
        self, solicitud_id: str, motivo: str, **kwargs
    ) -> Optional[Dict[str, Any]]:
        changes = {
            "estado": RequestStatus.NOT_COMPLETED.value,
            "motivoNoRealizacion": motivo,
        }
        return await self.update(solicitud_id, changes, **kwargs)

    async def sync(self) -> SyncResult:
        """Replay queued updates; call when connectivity returns."""
        if self.syncer is None:
            return SyncResult()
        return await self.syncer.sync()
