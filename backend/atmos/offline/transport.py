"""
httpx transport that routes a client's requests through an ``OfflineWorker``.

    worker = OfflineWorker(OfflineConfig(origin="https://atmos.example"), httpx.AsyncHTTPTransport())
    await worker.start()
    client = httpx.AsyncClient(
        base_url="https://atmos.example",
        transport=OfflineTransport(worker),
    )

Until the worker is activated (or claims the client) requests go straight
to the network, like a page loaded before its service worker took control.
"""

from __future__ import annotations

import uuid
from typing import Optional

import httpx

from atmos.offline.worker import OfflineWorker


class OfflineTransport(httpx.AsyncBaseTransport):
    def __init__(self, worker: OfflineWorker, client_id: Optional[str] = None):
        self.worker = worker
        self.client_id = client_id or str(uuid.uuid4())
        worker.register_client(self.client_id)

    @property
    def controlled(self) -> bool:
        return self.worker.controls(self.client_id)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if not self.controlled:
            return await self.worker.network.handle_async_request(request)
        return await self.worker.handle(request)

    async def aclose(self) -> None:
        # The worker owns the network transport and outlives its clients.
        self.worker.unregister_client(self.client_id)
