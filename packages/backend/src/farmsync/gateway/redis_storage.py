"""Redis-backed cache storage.

Learn: Layout under one namespace (default "farmsync:cache"):
- {ns}:buckets        sorted set of bucket names, scored by creation time
- {ns}:bucket:{name}  hash of request key → JSON snapshot (body base64)

A bucket is registered in the index on its first put (ZADD NX keeps the
original creation time). Deleting a bucket removes both the hash and the
index entry.
"""

import json
import time
from typing import Optional

import redis.asyncio as aioredis

from farmsync.gateway.snapshot import ResponseSnapshot
from farmsync.gateway.storage import CacheBucket, CacheStorage


def _text(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisBucket(CacheBucket):
    def __init__(self, name: str, storage: "RedisCacheStorage"):
        super().__init__(name)
        self._storage = storage
        self._key = storage.bucket_key(name)

    async def get(self, key: str) -> Optional[ResponseSnapshot]:
        raw = await self._storage.redis.hget(self._key, key)
        if raw is None:
            return None
        return ResponseSnapshot.from_dict(json.loads(raw))

    async def put(self, key: str, snapshot: ResponseSnapshot) -> None:
        r = self._storage.redis
        await r.zadd(self._storage.index_key, {self.name: time.time()}, nx=True)
        await r.hset(self._key, key, json.dumps(snapshot.to_dict()))

    async def delete(self, key: str) -> bool:
        return bool(await self._storage.redis.hdel(self._key, key))

    async def keys(self) -> list[str]:
        return [_text(k) for k in await self._storage.redis.hkeys(self._key)]


class RedisCacheStorage(CacheStorage):
    def __init__(self, redis: aioredis.Redis, namespace: str = "farmsync:cache"):
        self.redis = redis
        self.namespace = namespace
        self.index_key = f"{namespace}:buckets"

    @classmethod
    def from_url(cls, url: str, namespace: str = "farmsync:cache") -> "RedisCacheStorage":
        return cls(aioredis.from_url(url), namespace=namespace)

    def bucket_key(self, name: str) -> str:
        return f"{self.namespace}:bucket:{name}"

    def bucket(self, name: str) -> CacheBucket:
        return RedisBucket(name, self)

    async def list_buckets(self) -> list[str]:
        return [_text(n) for n in await self.redis.zrange(self.index_key, 0, -1)]

    async def delete_bucket(self, name: str) -> bool:
        removed = await self.redis.zrem(self.index_key, name)
        await self.redis.delete(self.bucket_key(name))
        return bool(removed)

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()
