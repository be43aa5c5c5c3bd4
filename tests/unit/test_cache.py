"""Tests for the in-memory TTL cache."""

import pytest

from dex_analytics.cache import InMemoryCacheService
from dex_analytics.interfaces import DeterministicTimeProvider


@pytest.fixture
def clock():
    return DeterministicTimeProvider(start_time=1000.0)


@pytest.fixture
def cache(clock):
    return InMemoryCacheService(clock)


class TestInMemoryCacheService:
    @pytest.mark.asyncio
    async def test_set_and_get(self, cache):
        await cache.set("k", "v", ttl=30)
        assert await cache.get("k") == "v"
        assert cache.hits == 1

    @pytest.mark.asyncio
    async def test_miss_is_none(self, cache):
        assert await cache.get("absent") is None
        assert cache.misses == 1

    @pytest.mark.asyncio
    async def test_expiry(self, cache, clock):
        await cache.set("k", "v", ttl=30)
        clock.advance_time(29.9)
        assert await cache.get("k") == "v"
        clock.advance_time(0.1)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_zero_ttl_not_stored(self, cache):
        await cache.set("k", "v", ttl=0)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_remove(self, cache):
        await cache.set("k", "v", ttl=30)
        await cache.remove("k")
        await cache.remove("never-set")
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_prune_and_stats(self, cache, clock):
        await cache.set("short", 1, ttl=5)
        await cache.set("long", 2, ttl=60)
        clock.advance_time(10)

        stats = cache.get_stats()
        assert stats["total_cached"] == 2
        assert stats["stale"] == 1

        assert cache.prune() == 1
        assert cache.get_stats()["total_cached"] == 1

    @pytest.mark.asyncio
    async def test_clear(self, cache):
        await cache.set("k", "v", ttl=30)
        cache.clear()
        assert await cache.get("k") is None
