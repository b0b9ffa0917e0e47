"""Gateway lifecycle and control-plane tests — install, activate, messages, sync."""

import pytest

from conftest import RecordingClient
from farmsync.gateway.snapshot import ResponseSnapshot
from farmsync.gateway.worker import GatewayState

STATIC = "farm-manager-static-v1"
DYNAMIC = "farm-manager-dynamic-v1"
API = "farm-manager-api-v1"


async def seed(storage, *names):
    for name in names:
        await storage.bucket(name).put("/seed", ResponseSnapshot(200, {}, b"x"))


# ─── Install / activate ─────────────────────────────────


@pytest.mark.asyncio
async def test_install_precaches_and_activates(gateway, storage):
    cached = await gateway.install()

    assert cached == 4
    assert gateway.state is GatewayState.ACTIVATED
    assert sorted(await storage.bucket(STATIC).keys()) == [
        "/", "/index.html", "/manifest.json", "/offline.html",
    ]


@pytest.mark.asyncio
async def test_install_tolerates_failing_assets(gateway, fetcher, storage):
    fetcher.failing.add("/manifest.json")
    del fetcher.routes["/offline.html"]  # upstream 404

    cached = await gateway.install()

    assert cached == 2
    assert gateway.active
    assert sorted(await storage.bucket(STATIC).keys()) == ["/", "/index.html"]


@pytest.mark.asyncio
async def test_activate_rotates_buckets(gateway, storage):
    await seed(storage, STATIC, DYNAMIC, API, "farm-manager-static-v0", "farm-manager-api-v0")
    gateway.state = GatewayState.INSTALLED

    deleted = await gateway.activate()

    assert deleted == ["farm-manager-static-v0", "farm-manager-api-v0"]
    assert sorted(await storage.list_buckets()) == sorted([STATIC, DYNAMIC, API])


@pytest.mark.asyncio
async def test_activate_claims_connected_clients(gateway):
    page = gateway.clients.register(RecordingClient())
    assert not page.controlled

    await gateway.install()
    assert page.controlled


@pytest.mark.asyncio
async def test_skip_waiting_only_from_installed(gateway):
    await gateway.skip_waiting()
    assert gateway.state is GatewayState.PENDING

    gateway.state = GatewayState.INSTALLED
    await gateway.skip_waiting()
    assert gateway.state is GatewayState.ACTIVATED


# ─── Control messages ───────────────────────────────────


@pytest.mark.asyncio
async def test_skip_waiting_message(gateway):
    gateway.state = GatewayState.INSTALLED
    assert await gateway.handle_message({"type": "SKIP_WAITING"}) == "SKIP_WAITING"
    assert gateway.active


@pytest.mark.asyncio
async def test_cache_urls_message(active_gateway, fetcher, storage):
    fetcher.add("/api/farms/F1", b"{}")
    fetcher.add("/livestock", b"<html/>")
    fetcher.failing.add("/crops")

    handled = await active_gateway.handle_message({
        "type": "CACHE_URLS",
        "payload": {"urls": ["/api/farms/F1", "/livestock", "/crops", "/missing"]},
    })

    assert handled == "CACHE_URLS"
    assert sorted(await storage.bucket(DYNAMIC).keys()) == ["/api/farms/F1", "/livestock"]


@pytest.mark.asyncio
async def test_cache_urls_without_payload_is_noop(active_gateway, fetcher):
    fetcher.calls.clear()
    assert await active_gateway.handle_message({"type": "CACHE_URLS"}) == "CACHE_URLS"
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_clear_cache_message(active_gateway, storage):
    await seed(storage, DYNAMIC, API)
    assert await active_gateway.handle_message({"type": "CLEAR_CACHE"}) == "CLEAR_CACHE"
    assert await storage.list_buckets() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [
    {"type": "UNREGISTER"},
    {"kind": "CLEAR_CACHE"},
    "CLEAR_CACHE",
    None,
])
async def test_unknown_messages_ignored(active_gateway, storage, raw):
    assert await active_gateway.handle_message(raw) is None
    assert await storage.list_buckets() == [STATIC]


# ─── Background sync ────────────────────────────────────


@pytest.mark.asyncio
async def test_sync_broadcasts_to_every_client(active_gateway):
    first = RecordingClient()
    second = RecordingClient()
    active_gateway.clients.register(first)
    active_gateway.clients.register(second)

    notified = await active_gateway.sync("farm-data-sync")

    assert notified == 2
    expected = {"type": "BACKGROUND_SYNC", "action": "SYNC_FARM_DATA"}
    assert first.received == [expected]
    assert second.received == [expected]


@pytest.mark.asyncio
async def test_sync_other_tag_ignored(active_gateway):
    page = RecordingClient()
    active_gateway.clients.register(page)
    assert await active_gateway.sync("photos-upload") == 0
    assert page.received == []


@pytest.mark.asyncio
async def test_broken_client_dropped_on_broadcast(active_gateway):
    active_gateway.clients.register(RecordingClient(fail=True))
    healthy = RecordingClient()
    active_gateway.clients.register(healthy)

    assert await active_gateway.sync("farm-data-sync") == 1
    assert len(active_gateway.clients) == 1
    assert len(healthy.received) == 1


@pytest.mark.asyncio
async def test_bucket_stats(active_gateway, storage):
    await seed(storage, "farm-manager-static-v0")
    stats = await active_gateway.bucket_stats()
    assert stats == [
        {"name": STATIC, "entries": 4, "current": True},
        {"name": "farm-manager-static-v0", "entries": 1, "current": False},
    ]
