"""
Offline worker: precache install, activation, and the per-request cache
strategies seen through an ``OfflineTransport``.
"""

import httpx
import pytest

from atmos.core.errors import PrecacheFailed
from atmos.offline.cache import CACHE_EXTENSION, CacheBucket, CachedResponse
from atmos.offline.transport import OfflineTransport
from atmos.offline.worker import (
    IMAGE_PLACEHOLDER,
    OfflineConfig,
    OfflineWorker,
    WorkerState,
    is_navigation,
    request_destination,
)

ORIGIN = "https://atmos.test"
HTML = {"Accept": "text/html"}


class FakeNetwork:
    """Scripted server behind an ``httpx.MockTransport``."""

    def __init__(self):
        self.online = True
        self.failing_paths = set()
        self.calls = []
        self.transport = httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if not self.online:
            raise httpx.ConnectError("network down", request=request)
        path = request.url.path
        if path in self.failing_paths:
            return httpx.Response(500, text="boom")
        if path.startswith("/api/solicitudes"):
            if request.method == "GET":
                return httpx.Response(200, json={"success": True, "solicitudes": [], "totalDocs": 0})
            return httpx.Response(201, json={"success": True})
        if path.endswith(".png"):
            return httpx.Response(200, content=b"PNG", headers={"Content-Type": "image/png"})
        if path.endswith(".css"):
            return httpx.Response(200, text="body{}", headers={"Content-Type": "text/css"})
        return httpx.Response(
            200, text=f"<html>{path}</html>", headers={"Content-Type": "text/html"}
        )


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def worker(network):
    return OfflineWorker(OfflineConfig(origin=ORIGIN), network.transport)


def _client(worker):
    return httpx.AsyncClient(base_url=ORIGIN, transport=OfflineTransport(worker))


class TestClassification:
    def test_destination_from_extension_or_suffix(self):
        explicit = httpx.Request("GET", f"{ORIGIN}/logo", extensions={"destination": "image"})

        assert request_destination(explicit) == "image"
        assert request_destination(httpx.Request("GET", f"{ORIGIN}/app.JS")) == "script"
        assert request_destination(httpx.Request("GET", f"{ORIGIN}/v1.2/datos")) == ""
        assert request_destination(httpx.Request("GET", f"{ORIGIN}/servicio")) == ""

    def test_navigation(self):
        assert is_navigation(httpx.Request("GET", f"{ORIGIN}/", headers=HTML))
        assert is_navigation(httpx.Request("GET", f"{ORIGIN}/", extensions={"mode": "navigate"}))
        assert not is_navigation(httpx.Request("POST", f"{ORIGIN}/", headers=HTML))
        assert not is_navigation(httpx.Request("GET", f"{ORIGIN}/manifest.json"))


class TestCacheBucket:
    def test_only_get_can_be_stored(self):
        bucket = CacheBucket("v1")
        request = httpx.Request("POST", f"{ORIGIN}/api/solicitudes")
        snapshot = CachedResponse(201, [], b"{}", str(request.url))

        with pytest.raises(ValueError):
            bucket.put(request, snapshot)
        assert bucket.match(request) is None

    def test_fragment_is_ignored(self):
        bucket = CacheBucket("v1")
        request = httpx.Request("GET", f"{ORIGIN}/servicio#lista")
        bucket.put(request, CachedResponse(200, [], b"ok", f"{ORIGIN}/servicio"))

        assert bucket.match(httpx.Request("GET", f"{ORIGIN}/servicio")) is not None


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_install_precaches_shell(self, worker):
        await worker.install()

        assert worker.state is WorkerState.INSTALLED
        bucket = worker.storage.open("atmos-v1")
        assert sorted(bucket.keys()) == sorted(
            f"{ORIGIN}{path}" for path in ("/", "/login", "/servicio", "/offline", "/manifest.json")
        )

    @pytest.mark.asyncio
    async def test_install_is_all_or_nothing(self, worker, network):
        network.failing_paths.add("/manifest.json")

        with pytest.raises(PrecacheFailed):
            await worker.install()

        assert worker.state is WorkerState.PARSED
        assert not worker.storage.has("atmos-v1")

        network.failing_paths.clear()
        await worker.install()
        assert worker.state is WorkerState.INSTALLED

    @pytest.mark.asyncio
    async def test_install_fails_when_offline(self, worker, network):
        network.online = False

        with pytest.raises(PrecacheFailed):
            await worker.install()
        assert worker.storage.keys() == []

    @pytest.mark.asyncio
    async def test_activate_requires_install(self, worker):
        with pytest.raises(RuntimeError):
            await worker.activate()

    @pytest.mark.asyncio
    async def test_activate_drops_old_buckets_and_claims_clients(self, worker):
        worker.storage.open("atmos-v0")
        transport = OfflineTransport(worker)
        assert not transport.controlled

        await worker.start()

        assert worker.storage.keys() == ["atmos-v1"]
        assert worker.state is WorkerState.ACTIVATED
        assert transport.controlled
        late = OfflineTransport(worker)
        assert late.controlled

        await late.aclose()
        assert not worker.controls(late.client_id)


class TestStrategies:
    @pytest.mark.asyncio
    async def test_uncontrolled_client_uses_network_only(self, worker, network):
        async with _client(worker) as client:
            response = await client.get("/api/solicitudes")
            await worker.drain()

        assert response.status_code == 200
        assert worker.storage.keys() == []

    @pytest.mark.asyncio
    async def test_api_is_network_first_with_cache_fallback(self, worker, network):
        await worker.start()
        async with _client(worker) as client:
            online = await client.get("/api/solicitudes", params={"activas": "true"})
            await worker.drain()
            network.online = False
            offline = await client.get("/api/solicitudes", params={"activas": "true"})

            assert CACHE_EXTENSION not in online.extensions
            assert offline.extensions[CACHE_EXTENSION] == "hit"
            assert offline.json() == online.json()

            with pytest.raises(httpx.ConnectError):
                await client.get("/api/solicitudes", params={"barrio": "otro"})

    @pytest.mark.asyncio
    async def test_mutations_and_errors_are_not_cached(self, worker, network):
        await worker.start()
        network.failing_paths.add("/api/solicitudes/roto")
        async with _client(worker) as client:
            await client.post("/api/solicitudes", json={"nombre": "x"})
            await client.get("/api/solicitudes/roto")
            await worker.drain()

        keys = worker.storage.open("atmos-v1").keys()
        assert f"{ORIGIN}/api/solicitudes" not in keys
        assert f"{ORIGIN}/api/solicitudes/roto" not in keys

    @pytest.mark.asyncio
    async def test_navigation_falls_back_to_page_then_offline_page(self, worker, network):
        await worker.start()
        network.online = False
        async with _client(worker) as client:
            cached = await client.get("/servicio", headers=HTML)
            unknown = await client.get("/reportes", headers=HTML)

        assert cached.text == "<html>/servicio</html>"
        assert unknown.text == "<html>/offline</html>"

    @pytest.mark.asyncio
    async def test_static_assets_are_cache_first(self, worker, network):
        await worker.start()
        async with _client(worker) as client:
            await client.get("/estilos.css")
            await worker.drain()
            calls = len(network.calls)
            again = await client.get("/estilos.css")

        assert again.text == "body{}"
        assert len(network.calls) == calls

    @pytest.mark.asyncio
    async def test_missing_image_gets_placeholder(self, worker, network):
        await worker.start()
        network.online = False
        async with _client(worker) as client:
            image = await client.get("/fotos/camion.png")
            with pytest.raises(httpx.ConnectError):
                await client.get("/estilos.css")

        assert image.status_code == 200
        assert image.headers["content-type"] == "image/svg+xml"
        assert image.text == IMAGE_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_cross_origin_passes_through(self, worker, network):
        await worker.start()
        network.online = False
        async with _client(worker) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get("https://tiles.example/1/2/3.png")

    @pytest.mark.asyncio
    async def test_pending_write_settles_before_next_read(self, worker, network):
        await worker.start()
        async with _client(worker) as client:
            await client.get("/api/solicitudes")
            network.online = False
            # No explicit drain: the second read waits for the first write.
            offline = await client.get("/api/solicitudes")

        assert offline.extensions[CACHE_EXTENSION] == "hit"
