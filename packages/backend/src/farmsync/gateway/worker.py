"""Cache gateway — request interception, cache lifecycle and sweeps.

Learn: CacheGateway plays the part a service worker plays in a browser,
but as a server-side component in front of the farm web/API server:

1. install()  — precache the critical assets into the static bucket, then
                skip waiting (activate right away)
2. activate() — delete every bucket that isn't one of the three current
                versioned names, then claim connected page clients
3. handle()   — pick a strategy per request (strategies.py)
4. handle_message() / sync() — page ↔ gateway control plane
5. run_sweeper() — evict dynamic entries older than the retention window

Until activation, requests pass straight through to the upstream.
"""

import asyncio
import enum
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from farmsync.config import Settings, settings as default_settings
from farmsync.gateway.clients import ClientHub
from farmsync.gateway.errors import NetworkError
from farmsync.gateway.fetch import Fetcher, GatewayRequest, HttpFetcher
from farmsync.gateway.messages import (
    BackgroundSyncMessage,
    CacheUrlsMessage,
    ClearCacheMessage,
    SkipWaitingMessage,
    control_message_adapter,
)
from farmsync.gateway.snapshot import ResponseSnapshot, request_key
from farmsync.gateway.storage import CacheStorage, MemoryCacheStorage
from farmsync.gateway import strategies

logger = structlog.get_logger()


class GatewayState(str, enum.Enum):
    PENDING = "pending"
    INSTALLED = "installed"  # installed, waiting to activate
    ACTIVATED = "activated"


class Strategy(str, enum.Enum):
    PASS_THROUGH = "pass_through"
    API = "api"
    STATIC = "static"
    NAVIGATION = "navigation"
    DYNAMIC = "dynamic"


class CacheGateway:
    def __init__(
        self,
        *,
        storage: CacheStorage,
        fetch: Fetcher,
        config: Optional[Settings] = None,
        clients: Optional[ClientHub] = None,
    ):
        self.settings = config or default_settings
        self.storage = storage
        self.fetch = fetch
        self.clients = clients or ClientHub()
        self.state = GatewayState.PENDING
        self._running = False

    @property
    def active(self) -> bool:
        return self.state is GatewayState.ACTIVATED

    # ─── Lifecycle ─────────────────────────────────────────

    async def install(self) -> int:
        """Precache critical assets. Returns how many were cached.

        An asset that fails is logged; installation still completes.
        """
        logger.info("gateway.installing", assets=len(self.settings.precache_assets))
        bucket = self.storage.bucket(self.settings.static_cache)

        async def precache(url: str) -> bool:
            try:
                response = await self.fetch(GatewayRequest(url=url))
            except NetworkError as e:
                logger.error("gateway.precache_failed", url=url, error=str(e))
                return False
            if not response.ok:
                logger.error("gateway.precache_failed", url=url, status=response.status)
                return False
            await bucket.put(request_key(url, origin=self.settings.upstream_url), response)
            return True

        results = await asyncio.gather(
            *(precache(url) for url in self.settings.precache_assets)
        )
        self.state = GatewayState.INSTALLED
        logger.info("gateway.installed", cached=sum(results))

        await self.skip_waiting()
        return sum(results)

    async def skip_waiting(self) -> None:
        """Activate as soon as installed instead of waiting."""
        if self.state is GatewayState.INSTALLED:
            await self.activate()

    async def activate(self) -> list[str]:
        """Drop buckets from other versions and claim clients.

        Returns the names of the deleted buckets.
        """
        logger.info("gateway.activating", version=self.settings.cache_version)
        current = set(self.settings.current_caches)
        deleted = []
        for name in await self.storage.list_buckets():
            if name not in current:
                await self.storage.delete_bucket(name)
                deleted.append(name)
                logger.info("gateway.cache_deleted", bucket=name)

        self.state = GatewayState.ACTIVATED
        claimed = self.clients.claim()
        logger.info("gateway.activated", deleted=len(deleted), claimed=claimed)
        return deleted

    # ─── Request interception ──────────────────────────────

    def classify(self, request: GatewayRequest) -> Strategy:
        """Pick a strategy. Order matters: API, static, navigation, default."""
        if request.method != "GET":
            return Strategy.PASS_THROUGH
        path = request.path
        if path.startswith(self.settings.api_prefix):
            return Strategy.API
        if self.is_static_asset(path):
            return Strategy.STATIC
        if request.is_navigation:
            return Strategy.NAVIGATION
        return Strategy.DYNAMIC

    def is_static_asset(self, path: str) -> bool:
        lowered = path.lower()
        return any(lowered.endswith(ext) for ext in self.settings.static_extensions)

    async def handle(self, request: GatewayRequest) -> ResponseSnapshot:
        """Answer a request. Raises NetworkError where no fallback applies."""
        if not self.active:
            return await self.fetch(request)

        strategy = self.classify(request)
        s = self.settings
        if strategy is Strategy.PASS_THROUGH:
            return await self.fetch(request)
        if strategy is Strategy.API:
            return await strategies.network_first(
                request, s.api_cache,
                storage=self.storage, fetch=self.fetch, offline_fallback=True,
            )
        if strategy is Strategy.STATIC:
            return await strategies.cache_first(
                request, s.static_cache, storage=self.storage, fetch=self.fetch,
            )
        if strategy is Strategy.NAVIGATION:
            return await strategies.navigation(
                request, s.dynamic_cache,
                storage=self.storage, fetch=self.fetch, offline_page=s.offline_page,
            )
        return await strategies.network_first(
            request, s.dynamic_cache, storage=self.storage, fetch=self.fetch,
        )

    # ─── Control plane ─────────────────────────────────────

    async def handle_message(self, raw: Any) -> Optional[str]:
        """Apply a control message from a page.

        Returns the message type, or None if the message was not understood.
        """
        try:
            message = control_message_adapter.validate_python(raw)
        except ValidationError:
            message_type = raw.get("type") if isinstance(raw, dict) else None
            logger.warning("gateway.unknown_message", type=message_type)
            return None

        if isinstance(message, SkipWaitingMessage):
            await self.skip_waiting()
        elif isinstance(message, CacheUrlsMessage):
            if message.payload and message.payload.urls:
                await self.cache_urls(message.payload.urls)
        elif isinstance(message, ClearCacheMessage):
            await self.clear_caches()
        return message.type

    async def cache_urls(self, urls: list[str]) -> int:
        """Fetch urls concurrently into the dynamic bucket. Returns how many were stored."""
        bucket = self.storage.bucket(self.settings.dynamic_cache)

        async def cache_one(url: str) -> bool:
            try:
                response = await self.fetch(GatewayRequest(url=url))
            except NetworkError as e:
                logger.warning("gateway.cache_url_failed", url=url, error=str(e))
                return False
            if not response.ok:
                return False
            await bucket.put(request_key(url, origin=self.settings.upstream_url), response)
            return True

        results = await asyncio.gather(*(cache_one(url) for url in urls))
        logger.info("gateway.urls_cached", requested=len(urls), cached=sum(results))
        return sum(results)

    async def clear_caches(self) -> int:
        """Delete every bucket. Returns how many were deleted."""
        names = await self.storage.list_buckets()
        for name in names:
            await self.storage.delete_bucket(name)
        logger.info("gateway.caches_cleared", buckets=len(names))
        return len(names)

    async def sync(self, tag: str) -> int:
        """Fire a background-sync tag. Returns the number of clients notified."""
        if tag != self.settings.sync_tag:
            logger.info("gateway.sync_ignored", tag=tag)
            return 0
        notified = await self.clients.broadcast(BackgroundSyncMessage().model_dump())
        logger.info("gateway.sync_completed", tag=tag, clients=notified)
        return notified

    # ─── Retention sweep ───────────────────────────────────

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Evict dynamic entries older than the retention window.

        Entries exactly at the limit stay. Entries without a usable Date
        header are never evicted. Returns the number evicted.
        """
        now = now or datetime.now(timezone.utc)
        max_age = timedelta(days=self.settings.cache_retention_days)
        bucket = self.storage.bucket(self.settings.dynamic_cache)
        evicted = 0
        try:
            for key in await bucket.keys():
                snapshot = await bucket.get(key)
                if snapshot is None or snapshot.date is None:
                    continue
                if now - snapshot.date > max_age:
                    await bucket.delete(key)
                    evicted += 1
                    logger.debug("gateway.entry_expired", key=key)
        except Exception:
            logger.exception("gateway.sweep_failed")
        logger.info("gateway.sweep_completed", evicted=evicted)
        return evicted

    async def run_sweeper(self) -> None:
        """Sweep once per configured interval until stop()."""
        self._running = True
        interval = self.settings.cache_sweep_interval_hours * 3600
        while self._running:
            try:
                await asyncio.sleep(interval)
                if not self._running:
                    break
                await self.sweep()
            except asyncio.CancelledError:
                break

    def stop(self) -> None:
        self._running = False

    # ─── Introspection ─────────────────────────────────────

    async def bucket_stats(self) -> list[dict[str, Any]]:
        stats = []
        for name in await self.storage.list_buckets():
            entries = await self.storage.bucket(name).keys()
            stats.append({
                "name": name,
                "entries": len(entries),
                "current": name in self.settings.current_caches,
            })
        return stats

    async def aclose(self) -> None:
        self.stop()
        aclose = getattr(self.fetch, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.storage.close()


def build_gateway(config: Optional[Settings] = None) -> CacheGateway:
    """Gateway wired from settings: configured storage + httpx upstream fetcher."""
    config = config or default_settings
    if config.cache_backend == "redis":
        from farmsync.gateway.redis_storage import RedisCacheStorage

        storage: CacheStorage = RedisCacheStorage.from_url(config.redis_url)
    else:
        storage = MemoryCacheStorage()

    fetcher = HttpFetcher(config.upstream_url, timeout=config.fetch_timeout_seconds)
    return CacheGateway(storage=storage, fetch=fetcher, config=config)
