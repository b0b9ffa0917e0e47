"""Test fixtures — in-process fakes for the network edges.

Learn: Neither component talks to a real server in tests:

1. The channel manager gets a TransportFactory that hands out FakeTransports
   (scripted to connect, fail or hang) and a FakeScheduler that records
   retry delays and runs retries only when a test says so. No real sleeps.
2. The cache gateway gets a FakeFetcher (a dict of canned upstream
   responses with an "offline" switch) and in-memory storage.
3. HTTP tests drive the FastAPI app through httpx's ASGITransport, the
   same way the app is exercised in production minus the socket.

The lifespan is not run by ASGITransport, so the gateway fixture installs
(and thereby activates) the gateway itself.
"""

import asyncio
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from farmsync.config import Settings
from farmsync.gateway.errors import FetchTimeout, NetworkError
from farmsync.gateway.fetch import GatewayRequest
from farmsync.gateway.snapshot import ResponseSnapshot
from farmsync.gateway.storage import MemoryCacheStorage
from farmsync.gateway.worker import CacheGateway
from farmsync.main import create_app
from farmsync.realtime.errors import TransportError
from farmsync.realtime.manager import ChannelManager
from farmsync.realtime.scheduler import ScheduledCall, Scheduler
from farmsync.realtime.transport import DisconnectReason, Transport


# ─── Realtime fakes ─────────────────────────────────────


class FakeTransport(Transport):
    """Scripted transport. behavior: "ok", "fail", "hang" or "slow".

    "slow" waits until the test sets `gate`, then connects (or raises when
    `fail_on_release` is set).
    """

    def __init__(self, behavior: str = "ok"):
        self.behavior = behavior
        self.sent: list[tuple[str, Any]] = []
        self.url: Optional[str] = None
        self.token: Optional[str] = None
        self.params: Optional[dict[str, str]] = None
        self.listener = None
        self.closed = False
        self._connected = False
        self.gate = asyncio.Event()
        self.fail_on_release = False

    async def open(self, url, *, token, params, listener):
        self.url = url
        self.token = token
        self.params = params
        self.listener = listener
        if self.behavior == "slow":
            await self.gate.wait()
            if self.fail_on_release:
                raise TransportError("connection reset")
        if self.behavior == "fail":
            raise TransportError("connection refused")
        if self.behavior == "hang":
            await asyncio.Event().wait()
        self._connected = True

    async def send(self, event, data):
        if not self._connected:
            raise TransportError(f"Cannot send '{event}': not connected")
        self.sent.append((event, data))

    async def close(self):
        if self.closed:
            return
        self.closed = True
        was_connected, self._connected = self._connected, False
        if was_connected and self.listener is not None:
            self.listener.on_disconnect(DisconnectReason.CLIENT)

    @property
    def connected(self) -> bool:
        return self._connected

    # Test helpers: simulate the server side

    def push(self, name: str, payload: Any) -> None:
        self.listener.on_event(name, payload)

    def drop(self, reason: DisconnectReason = DisconnectReason.SERVER) -> None:
        self._connected = False
        self.listener.on_disconnect(reason)


class TransportFactory:
    """Creates FakeTransports. Queue behaviors, or set a default."""

    def __init__(self):
        self.created: list[FakeTransport] = []
        self.behaviors: list[str] = []
        self.default = "ok"

    def __call__(self) -> FakeTransport:
        behavior = self.behaviors.pop(0) if self.behaviors else self.default
        transport = FakeTransport(behavior)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class FakeCall(ScheduledCall):
    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def done(self) -> bool:
        return self.cancelled or self.ran

    async def run(self) -> None:
        self.ran = True
        await self.callback()


class FakeScheduler(Scheduler):
    """Records every call_later(); runs them only via run_next()."""

    def __init__(self):
        self.calls: list[FakeCall] = []

    def call_later(self, delay, callback) -> FakeCall:
        call = FakeCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def delays(self) -> list[float]:
        return [c.delay for c in self.calls]

    @property
    def pending(self) -> list[FakeCall]:
        return [c for c in self.calls if not c.done]

    async def run_next(self) -> None:
        await self.pending[0].run()


@pytest.fixture()
def transports():
    return TransportFactory()


@pytest.fixture()
def scheduler():
    return FakeScheduler()


@pytest.fixture()
def manager(transports, scheduler):
    """ChannelManager with fake transport/scheduler and the reference retry policy."""
    return ChannelManager(
        url="ws://farm.test/realtime",
        token_provider=lambda: "test-token",
        transport_factory=transports,
        scheduler=scheduler,
        connect_timeout=0.05,
        max_reconnect_attempts=5,
        reconnect_base_delay=1.0,
    )


# ─── Gateway fakes ──────────────────────────────────────


class FakeFetcher:
    """Canned upstream. Unknown URLs answer 404; `offline` makes every fetch fail."""

    def __init__(self):
        self.routes: dict[str, ResponseSnapshot] = {}
        self.failing: set[str] = set()
        self.timing_out: set[str] = set()
        self.offline = False
        self.calls: list[GatewayRequest] = []

    def add(
        self,
        url: str,
        body: bytes = b"",
        *,
        status: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.routes[url] = ResponseSnapshot(
            status=status,
            headers=headers or {"content-type": "text/plain"},
            body=body,
        )

    async def __call__(self, request: GatewayRequest) -> ResponseSnapshot:
        self.calls.append(request)
        if request.url in self.timing_out:
            raise FetchTimeout(f"Timed out fetching {request.url}")
        if self.offline or request.url in self.failing:
            raise NetworkError(f"Could not reach {request.url}")
        response = self.routes.get(request.url)
        if response is None:
            return ResponseSnapshot(404, {"content-type": "text/plain"}, b"not found")
        return response


class RecordingClient:
    """Stand-in for a page's WebSocket."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.received: list[Any] = []

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.received.append(data)


@pytest.fixture()
def gateway_settings():
    return Settings(cache_prefix="farm-manager", cache_version="v1")


@pytest.fixture()
def storage():
    return MemoryCacheStorage()


@pytest.fixture()
def fetcher():
    f = FakeFetcher()
    f.add("/", b"<html>home</html>", headers={"content-type": "text/html"})
    f.add("/index.html", b"<html>home</html>", headers={"content-type": "text/html"})
    f.add("/manifest.json", b'{"name": "Farm Manager"}', headers={"content-type": "application/json"})
    f.add("/offline.html", b"<html>offline copy</html>", headers={"content-type": "text/html"})
    return f


@pytest.fixture()
def gateway(storage, fetcher, gateway_settings):
    """A gateway that has not been installed yet."""
    return CacheGateway(storage=storage, fetch=fetcher, config=gateway_settings)


@pytest_asyncio.fixture()
async def active_gateway(gateway):
    """Installed and activated gateway (precache done)."""
    await gateway.install()
    return gateway


@pytest_asyncio.fixture()
async def client(active_gateway):
    """HTTP client for the gateway app, wired to the fake upstream.

    Learn: create_app(gateway) attaches our gateway to app.state, so the
    get_gateway dependency hands it to every route. No overrides needed.
    """
    app = create_app(active_gateway)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
