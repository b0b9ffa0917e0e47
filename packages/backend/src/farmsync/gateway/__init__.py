"""Offline cache gateway — keeps farm pages usable without a network.

Learn: Requests flow: page → gateway → (cache | upstream). The gateway
decides per request which side is the source of truth, keeps versioned
cache buckets, and talks to open pages only through messages.
"""

from farmsync.gateway.errors import AssetFetchFailure, FetchTimeout, NetworkError
from farmsync.gateway.fetch import GatewayRequest, HttpFetcher
from farmsync.gateway.snapshot import ResponseSnapshot, request_key
from farmsync.gateway.storage import CacheStorage, MemoryCacheStorage
from farmsync.gateway.worker import CacheGateway, GatewayState, Strategy, build_gateway

__all__ = [
    "AssetFetchFailure",
    "CacheGateway",
    "CacheStorage",
    "FetchTimeout",
    "GatewayRequest",
    "GatewayState",
    "HttpFetcher",
    "MemoryCacheStorage",
    "NetworkError",
    "ResponseSnapshot",
    "Strategy",
    "build_gateway",
    "request_key",
]
