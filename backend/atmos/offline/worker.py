"""
Offline worker: decides, per request, whether to use the network or the
cache, and keeps the precached application shell up to date.

Lifecycle mirrors a browser service worker: ``install`` fetches the shell
into a versioned bucket (all or nothing), ``activate`` drops older buckets
and takes control of every registered client, and ``handle`` dispatches
requests from controlled clients.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set, Tuple

import httpx

from atmos.core.errors import PrecacheFailed
from atmos.offline.cache import CacheBucket, CachedResponse, CacheStorage, cache_key

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100">'
    '<rect fill="#ddd" width="100" height="100"/></svg>'
)

STATIC_DESTINATIONS = {"style", "script", "image", "font"}

_SUFFIX_DESTINATIONS = {
    ".css": "style",
    ".js": "script",
    ".mjs": "script",
    ".png": "image",
    ".jpg": "image",
    ".jpeg": "image",
    ".gif": "image",
    ".svg": "image",
    ".webp": "image",
    ".ico": "image",
    ".woff": "font",
    ".woff2": "font",
    ".ttf": "font",
    ".otf": "font",
}


@dataclass
class OfflineConfig:
    origin: str
    cache_version: str = "atmos-v1"
    precache: Tuple[str, ...] = ("/", "/login", "/servicio", "/offline", "/manifest.json")
    offline_url: str = "/offline"
    api_prefix: str = "/api/"

    def url(self, path: str) -> httpx.URL:
        return httpx.URL(self.origin).join(path)


class WorkerState(str, Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


def _origin_of(url: httpx.URL) -> Tuple[str, str, Optional[int]]:
    return url.scheme, url.host, url.port


def request_destination(request: httpx.Request) -> str:
    """Resource class of a request: explicit extension first, then the path suffix."""
    destination = request.extensions.get("destination")
    if destination:
        return destination
    path = request.url.path.lower()
    dot = path.rfind(".")
    if dot == -1 or "/" in path[dot:]:
        return ""
    return _SUFFIX_DESTINATIONS.get(path[dot:], "")


def is_navigation(request: httpx.Request) -> bool:
    if request.extensions.get("mode") == "navigate":
        return True
    return request.method == "GET" and "text/html" in request.headers.get("accept", "")


class OfflineWorker:
    def __init__(
        self,
        config: OfflineConfig,
        network: httpx.AsyncBaseTransport,
        storage: Optional[CacheStorage] = None,
    ):
        self.config = config
        self.network = network
        self.storage = storage if storage is not None else CacheStorage()
        self.state = WorkerState.PARSED
        self.clients: Set[str] = set()
        self.controlled: Set[str] = set()
        self._pending_writes: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def install(self) -> None:
        """
        Fetch every precache URL into a staging bucket and commit it only if
        all of them succeeded. On failure the worker stays uninstalled and
        ``install`` may be called again.
        """
        self.state = WorkerState.INSTALLING
        staged = CacheBucket(self.config.cache_version)
        try:
            for path in self.config.precache:
                request = httpx.Request("GET", self.config.url(path))
                response = await self.network.handle_async_request(request)
                await response.aread()
                if not response.is_success:
                    raise PrecacheFailed(
                        f"No se pudo precargar {path} ({response.status_code})"
                    )
                staged.put(request, CachedResponse.from_response(request, response, time.time()))
        except httpx.TransportError as exc:
            self._install_failed(exc)
            raise PrecacheFailed() from exc
        except PrecacheFailed as exc:
            self._install_failed(exc)
            raise

        self.storage.commit(staged)
        self.state = WorkerState.INSTALLED
        logger.info(
            "offline_installed",
            extra={
                "cache_version": self.config.cache_version,
                "resources": len(self.config.precache),
            },
        )

    def _install_failed(self, exc: Exception) -> None:
        self.state = WorkerState.PARSED
        logger.warning(
            "offline_install_failed",
            extra={"cache_version": self.config.cache_version, "error": str(exc)},
        )

    async def activate(self) -> None:
        """Delete buckets from older versions, then claim every client."""
        if self.state not in (WorkerState.INSTALLED, WorkerState.ACTIVATED):
            raise RuntimeError("El worker debe instalarse antes de activarse")
        self.state = WorkerState.ACTIVATING
        for name in self.storage.keys():
            if name != self.config.cache_version:
                self.storage.delete(name)
        self.claim()
        self.state = WorkerState.ACTIVATED
        logger.info(
            "offline_activated",
            extra={"cache_version": self.config.cache_version, "clients": len(self.controlled)},
        )

    async def start(self) -> None:
        """Install and activate right away (no waiting for old clients)."""
        await self.install()
        await self.activate()

    def register_client(self, client_id: str) -> None:
        self.clients.add(client_id)
        if self.state is WorkerState.ACTIVATED:
            self.controlled.add(client_id)

    def unregister_client(self, client_id: str) -> None:
        self.clients.discard(client_id)
        self.controlled.discard(client_id)

    def claim(self) -> None:
        self.controlled = set(self.clients)

    def controls(self, client_id: str) -> bool:
        return client_id in self.controlled

    # ------------------------------------------------------------------
    # Request dispatch
    # ------------------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        url = request.url
        if _origin_of(url) != _origin_of(httpx.URL(self.config.origin)):
            return await self.network.handle_async_request(request)

        await self._settle(request)

        if url.path.startswith(self.config.api_prefix):
            return await self._network_first(request)
        if is_navigation(request):
            return await self._navigate(request)
        if request_destination(request) in STATIC_DESTINATIONS:
            return await self._cache_first(request)
        return await self._network_first(request)

    async def _fetch(self, request: httpx.Request) -> httpx.Response:
        response = await self.network.handle_async_request(request)
        await response.aread()
        return response

    async def _network_first(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            cached = self.storage.match(request)
            if cached is None:
                raise
            logger.info("offline_cache_fallback", extra={"url": cache_key(request)})
            return cached.to_response(request)

        if request.method == "GET" and response.is_success:
            self._schedule_write(request, response)
        return response

    async def _navigate(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            cached = self.storage.match(request)
            if cached is None:
                offline_request = httpx.Request("GET", self.config.url(self.config.offline_url))
                cached = self.storage.match(offline_request)
            if cached is None:
                raise
            logger.info(
                "offline_navigation_fallback",
                extra={"url": cache_key(request), "served": cached.url},
            )
            return cached.to_response(request)

        if response.is_success:
            self._schedule_write(request, response)
        return response

    async def _cache_first(self, request: httpx.Request) -> httpx.Response:
        cached = self.storage.match(request)
        if cached is not None:
            logger.debug("offline_cache_hit", extra={"url": cache_key(request)})
            return cached.to_response(request)
        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            if request_destination(request) == "image":
                return httpx.Response(
                    200,
                    headers={"Content-Type": "image/svg+xml"},
                    content=IMAGE_PLACEHOLDER.encode(),
                    request=request,
                )
            raise

        if response.is_success:
            self._schedule_write(request, response)
        return response

    # ------------------------------------------------------------------
    # Background cache writes
    # ------------------------------------------------------------------

    def _schedule_write(self, request: httpx.Request, response: httpx.Response) -> None:
        if request.method != "GET":
            return
        key = cache_key(request)
        snapshot = CachedResponse.from_response(request, response, time.time())
        task = asyncio.get_running_loop().create_task(self._write(request, snapshot))
        self._pending_writes[key] = task

        def _forget(done: asyncio.Task, key: str = key) -> None:
            if self._pending_writes.get(key) is done:
                del self._pending_writes[key]

        task.add_done_callback(_forget)

    async def _write(self, request: httpx.Request, snapshot: CachedResponse) -> None:
        self.storage.open(self.config.cache_version).put(request, snapshot)

    async def _settle(self, request: httpx.Request) -> None:
        """Wait for a pending write to the same key before serving it again."""
        task = self._pending_writes.get(cache_key(request))
        if task is not None:
            await task

    async def drain(self) -> None:
        """Wait for every pending cache write."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes.values()))
