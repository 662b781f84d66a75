import asyncio

import pytest

from fitacademy.services.memory_cache import memory_cache, read_through


@pytest.mark.unit
class TestReadThrough:
    async def test_concurrent_misses_load_once(self, redis):
        calls = []

        async def loader():
            calls.append(1)
            await asyncio.sleep(0)
            return {"value": 1}

        results = await asyncio.gather(*[read_through(redis, "k:1", 60, "test", loader) for _ in range(5)])
        assert results == [{"value": 1}] * 5
        assert len(calls) == 1

    async def test_locks_released_after_load(self, redis):
        async def loader():
            return {"value": 1}

        for i in range(20):
            await read_through(redis, f"orders:{i}", 60, "test", loader)
        assert memory_cache.lock_count() == 0

    async def test_lock_released_when_loader_fails(self, redis):
        async def loader():
            raise RuntimeError("upstream")

        with pytest.raises(RuntimeError):
            await read_through(redis, "k:err", 60, "test", loader)
        assert memory_cache.lock_count() == 0

    async def test_none_is_not_cached(self, redis):
        async def loader():
            return None

        assert await read_through(redis, "k:none", 60, "test", loader) is None
        assert await redis.get("k:none") is None
