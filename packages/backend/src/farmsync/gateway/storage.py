"""Cache storage — named buckets of request → response snapshots.

Learn: The strategies never touch a concrete cache. They get a CacheStorage
and ask it for buckets by name. Two backends ship:
- MemoryCacheStorage: dicts, per process (default, and what tests use)
- RedisCacheStorage: shared across gateway replicas (redis_storage.py)

Buckets appear on first write, so opening a bucket that is never written
to leaves no trace in list_buckets().
"""

from abc import ABC, abstractmethod
from typing import Optional

from farmsync.gateway.snapshot import ResponseSnapshot


class CacheBucket(ABC):
    """One named bucket."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def get(self, key: str) -> Optional[ResponseSnapshot]:
        """Return the snapshot stored under key, if any."""

    @abstractmethod
    async def put(self, key: str, snapshot: ResponseSnapshot) -> None:
        """Store (or overwrite) the snapshot under key."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key. Returns True if it was present."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """All keys in the bucket."""


class CacheStorage(ABC):
    """The set of buckets."""

    @abstractmethod
    def bucket(self, name: str) -> CacheBucket:
        """Handle for bucket `name` (created lazily on first put)."""

    @abstractmethod
    async def list_buckets(self) -> list[str]:
        """Names of existing buckets in creation order."""

    @abstractmethod
    async def delete_bucket(self, name: str) -> bool:
        """Drop a bucket and all its entries. Returns True if it existed."""

    async def match(self, key: str) -> Optional[ResponseSnapshot]:
        """First snapshot stored under key in any bucket."""
        for name in await self.list_buckets():
            snapshot = await self.bucket(name).get(key)
            if snapshot is not None:
                return snapshot
        return None

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class MemoryBucket(CacheBucket):
    def __init__(self, name: str, storage: "MemoryCacheStorage"):
        super().__init__(name)
        self._storage = storage

    def _entries(self) -> dict[str, ResponseSnapshot]:
        return self._storage._buckets.get(self.name, {})

    async def get(self, key: str) -> Optional[ResponseSnapshot]:
        return self._entries().get(key)

    async def put(self, key: str, snapshot: ResponseSnapshot) -> None:
        self._storage._buckets.setdefault(self.name, {})[key] = snapshot

    async def delete(self, key: str) -> bool:
        return self._entries().pop(key, None) is not None

    async def keys(self) -> list[str]:
        return list(self._entries())


class MemoryCacheStorage(CacheStorage):
    def __init__(self):
        self._buckets: dict[str, dict[str, ResponseSnapshot]] = {}

    def bucket(self, name: str) -> CacheBucket:
        return MemoryBucket(name, self)

    async def list_buckets(self) -> list[str]:
        return list(self._buckets)

    async def delete_bucket(self, name: str) -> bool:
        return self._buckets.pop(name, None) is not None
