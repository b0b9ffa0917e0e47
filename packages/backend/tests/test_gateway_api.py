"""Gateway HTTP surface tests — /_gateway routes and the intercepting proxy."""

import pytest
from httpx import ASGITransport, AsyncClient

from farmsync.main import create_app


# ─── /_gateway ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/_gateway/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["gateway"] == "activated"
    assert data["storage"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_degraded_before_activation(gateway):
    transport = ASGITransport(app=create_app(gateway))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        data = (await ac.get("/_gateway/health")).json()
    assert data["status"] == "degraded"
    assert data["gateway"] == "pending"


@pytest.mark.asyncio
async def test_post_clear_cache(client, storage):
    resp = await client.post("/_gateway/messages", json={"type": "CLEAR_CACHE"})
    assert resp.status_code == 200
    assert resp.json() == {"type": "CLEAR_CACHE", "status": "ok"}
    assert await storage.list_buckets() == []


@pytest.mark.asyncio
async def test_post_cache_urls(client, fetcher, storage):
    fetcher.add("/api/farms", b"[]")
    resp = await client.post(
        "/_gateway/messages",
        json={"type": "CACHE_URLS", "payload": {"urls": ["/api/farms"]}},
    )
    assert resp.status_code == 200
    assert await storage.bucket("farm-manager-dynamic-v1").keys() == ["/api/farms"]


@pytest.mark.asyncio
async def test_primed_upstream_url_is_served_by_path(client, fetcher, storage, gateway_settings):
    url = f"{gateway_settings.upstream_url}/api/herds"
    fetcher.add(url, b'[{"id": "H1"}]', headers={"content-type": "application/json"})

    resp = await client.post(
        "/_gateway/messages",
        json={"type": "CACHE_URLS", "payload": {"urls": [url]}},
    )
    assert resp.status_code == 200
    assert await storage.bucket("farm-manager-dynamic-v1").keys() == ["/api/herds"]

    fetcher.offline = True
    offline = await client.get("/api/herds")
    assert offline.status_code == 200
    assert offline.json() == [{"id": "H1"}]


@pytest.mark.asyncio
async def test_post_unknown_message(client):
    resp = await client.post("/_gateway/messages", json={"type": "UNREGISTER"})
    assert resp.status_code == 400
    assert "UNREGISTER" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_fire_sync(client):
    resp = await client.post("/_gateway/sync/farm-data-sync")
    assert resp.status_code == 200
    assert resp.json() == {"tag": "farm-data-sync", "notified": 0}


@pytest.mark.asyncio
async def test_list_buckets(client):
    resp = await client.get("/_gateway/buckets")
    assert resp.status_code == 200
    assert resp.json() == [
        {"name": "farm-manager-static-v1", "entries": 4, "current": True},
    ]


# ─── Proxy ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_proxy_api_online_then_offline(client, fetcher):
    fetcher.add("/api/farms?page=1", b'[{"id": "F1"}]', headers={"content-type": "application/json"})

    online = await client.get("/api/farms?page=1")
    assert online.status_code == 200
    assert online.json() == [{"id": "F1"}]

    fetcher.offline = True
    offline = await client.get("/api/farms?page=1")
    assert offline.status_code == 200
    assert offline.json() == [{"id": "F1"}]

    missing = await client.get("/api/livestock")
    assert missing.status_code == 503
    assert missing.json()["error"] == "Offline"


@pytest.mark.asyncio
async def test_proxy_forwards_method_body_and_headers(client, fetcher):
    fetcher.add("/api/farms", b'{"id": "F2"}', status=201)

    resp = await client.post("/api/farms", content=b'{"name": "New"}', headers={"X-Farm": "1"})

    assert resp.status_code == 201
    forwarded = fetcher.calls[-1]
    assert forwarded.method == "POST"
    assert forwarded.body == b'{"name": "New"}'
    assert forwarded.headers["x-farm"] == "1"


@pytest.mark.asyncio
async def test_proxy_navigation_offline(client, fetcher):
    fetcher.offline = True
    resp = await client.get("/livestock", headers={"Sec-Fetch-Mode": "navigate"})
    assert resp.status_code == 200
    assert resp.text == "<html>offline copy</html>"


@pytest.mark.asyncio
async def test_proxy_static_failure_is_502(client, fetcher):
    fetcher.offline = True
    resp = await client.get("/assets/missing.css")
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_proxy_timeout_is_504(client, fetcher):
    fetcher.timing_out.add("/reports/summary")
    resp = await client.get("/reports/summary")
    assert resp.status_code == 504


# ─── Middleware ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_request_id_generated(client):
    r1 = await client.get("/_gateway/health")
    r2 = await client.get("/_gateway/health")
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    r = await client.get("/_gateway/health", headers={"X-Request-ID": "trace-123"})
    assert r.headers["X-Request-ID"] == "trace-123"
