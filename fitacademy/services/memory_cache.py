# services/memory_cache.py
"""
Two-level read-through cache.

- L1: in-process dict with TTL, for hot course/review reads
- L2: Redis, shared between workers
A per-key asyncio.Lock keeps concurrent misses from stampeding the backend.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional

from redis.asyncio import Redis

from fitacademy.services.cache_stats import hit, miss


class AsyncInMemoryCache:
    def __init__(self):
        self._store: Dict[str, tuple] = {}
        self._locks: Dict[str, list] = {}

    def _now(self) -> float:
        return time.monotonic()

    def size(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> Optional[Any]:
        item = self._store.get(key)
        if not item:
            return None
        expires_at, value = item
        if expires_at and self._now() > expires_at:
            self._store.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl: int = 0) -> None:
        expires_at = self._now() + ttl if ttl and ttl > 0 else 0
        self._store[key] = (expires_at, value)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def pattern_delete(self, prefix: str) -> None:
        for k in [k for k in self._store if k.startswith(prefix)]:
            self._store.pop(k, None)

    async def clear(self) -> None:
        self._store.clear()
        self._locks.clear()

    @asynccontextmanager
    async def key_lock(self, key: str):
        # [lock, holders]; the entry is dropped when the last holder leaves
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0 and self._locks.get(key) is entry:
                self._locks.pop(key, None)

    def lock_count(self) -> int:
        return len(self._locks)


memory_cache = AsyncInMemoryCache()


async def read_through(r: Redis, key: str, ttl: int, namespace: str,
                       loader: Callable[[], Awaitable[Optional[dict]]]) -> Optional[dict]:
    """Return the cached value for `key`, calling `loader` on a miss."""
    cached = await memory_cache.get(key)
    if cached is not None:
        await hit(r, namespace)
        return cached

    async with memory_cache.key_lock(key):
        cached = await memory_cache.get(key)
        if cached is not None:
            await hit(r, namespace)
            return cached

        cached_l2 = await r.get(key)
        if cached_l2:
            try:
                payload = json.loads(cached_l2)
            except json.JSONDecodeError:
                await r.delete(key)
            else:
                await memory_cache.set(key, payload, ttl=ttl)
                await hit(r, namespace)
                return payload

        await miss(r, namespace)
        data = await loader()
        if data is not None:
            await store(r, key, data, ttl)
        return data


async def store(r: Redis, key: str, value: dict, ttl: int) -> None:
    await r.set(key, json.dumps(value, default=str), ex=ttl)
    await memory_cache.set(key, value, ttl=ttl)


async def invalidate(r: Redis, key: str) -> None:
    await asyncio.gather(memory_cache.delete(key), r.delete(key))


async def invalidate_prefix(r: Redis, prefix: str) -> None:
    await memory_cache.pattern_delete(prefix)
    cursor = 0
    while True:
        cursor, keys = await r.scan(cursor=cursor, match=f"{prefix}*", count=200)
        if keys:
            await r.delete(*keys)
        if cursor == 0:
            break
