"""Caching strategies.

Learn: Three algorithms decide whether the cache or the network is the
source of truth for a request:

- network_first: network, store on success; on network failure fall back
  to any cached copy. For API paths with nothing cached, answer with a
  synthesized 503 {"error": "Offline"} so the UI can show "unavailable
  offline" instead of a generic failure. Otherwise the error propagates.
- cache_first: cached copy if present, network only on a miss. A miss
  with no network raises AssetFetchFailure.
- navigation: network, then cache, then the offline page, then an inline
  offline document. Navigations never fail while the gateway is up.

Only ok (2xx) responses are stored. Cache lookups search every bucket;
writes go to the bucket named by the caller. Two concurrent misses for the
same key both write; the last write wins.
"""

import json

import structlog

from farmsync.gateway.errors import AssetFetchFailure, NetworkError
from farmsync.gateway.fetch import Fetcher, GatewayRequest
from farmsync.gateway.snapshot import ResponseSnapshot, request_key
from farmsync.gateway.storage import CacheStorage

logger = structlog.get_logger()

OFFLINE_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Offline - Farm Manager</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    body { font-family: Arial, sans-serif; text-align: center; padding: 50px; }
    .offline-message { max-width: 400px; margin: 0 auto; }
  </style>
</head>
<body>
  <div class="offline-message">
    <h1>You're Offline</h1>
    <p>Farm Manager is not available right now. Please check your internet connection and try again.</p>
    <button onclick="window.location.reload()">Try Again</button>
  </div>
</body>
</html>
"""


def offline_api_response() -> ResponseSnapshot:
    """503 answer for an API request that is neither reachable nor cached."""
    return ResponseSnapshot(
        status=503,
        headers={"content-type": "application/json"},
        body=json.dumps({
            "error": "Offline",
            "message": "This data is not available offline",
        }).encode(),
    )


def offline_page_response() -> ResponseSnapshot:
    return ResponseSnapshot(
        status=200,
        headers={"content-type": "text/html; charset=utf-8"},
        body=OFFLINE_HTML.encode(),
    )


async def _store(
    storage: CacheStorage, bucket: str, request: GatewayRequest, response: ResponseSnapshot
) -> None:
    if response.ok:
        await storage.bucket(bucket).put(request.key, response)


async def network_first(
    request: GatewayRequest,
    bucket: str,
    *,
    storage: CacheStorage,
    fetch: Fetcher,
    offline_fallback: bool = False,
) -> ResponseSnapshot:
    try:
        response = await fetch(request)
    except NetworkError:
        logger.info("gateway.network_failed", url=request.url, bucket=bucket)
        cached = await storage.match(request.key)
        if cached is not None:
            return cached
        if offline_fallback:
            return offline_api_response()
        raise

    await _store(storage, bucket, request, response)
    return response


async def cache_first(
    request: GatewayRequest,
    bucket: str,
    *,
    storage: CacheStorage,
    fetch: Fetcher,
) -> ResponseSnapshot:
    cached = await storage.match(request.key)
    if cached is not None:
        return cached

    try:
        response = await fetch(request)
    except NetworkError as e:
        logger.error("gateway.asset_fetch_failed", url=request.url, error=str(e))
        raise AssetFetchFailure(f"Asset {request.path} is not cached and could not be fetched") from e

    await _store(storage, bucket, request, response)
    return response


async def navigation(
    request: GatewayRequest,
    bucket: str,
    *,
    storage: CacheStorage,
    fetch: Fetcher,
    offline_page: str,
) -> ResponseSnapshot:
    try:
        response = await fetch(request)
    except NetworkError:
        logger.info("gateway.navigation_offline", url=request.url)
        cached = await storage.match(request.key)
        if cached is not None:
            return cached
        fallback = await storage.match(request_key(offline_page))
        if fallback is not None:
            return fallback
        return offline_page_response()

    await _store(storage, bucket, request, response)
    return response
