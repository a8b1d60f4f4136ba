"""
Unit tests for src/cache.py

Tests TTL selection and the Redis-backed JSON cache.
"""

import pytest
from redis.exceptions import RedisError

from src.cache import CacheKeys, RedisCache, select_ttl


class TestSelectTtl:
    """Tests for result-quality based expiry."""

    @pytest.mark.parametrize(
        "count,expected",
        [(35, 3600), (30, 3600), (29, 300), (1, 300), (0, 60)],
    )
    def test_ttl_by_result_count(self, count, expected):
        ttl = select_ttl(count, threshold=30, full_ttl=3600, partial_ttl=300, empty_ttl=60)
        assert ttl == expected


class TestRedisCache:
    """Tests for RedisCache against the in-memory Redis."""

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache, fake_redis):
        await cache.set("k", {"a": [1, 2]}, 100)

        assert await cache.get("k") == {"a": [1, 2]}
        assert fake_redis.ttls["k"] == 100

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, cache):
        assert await cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_entry_expires(self, cache, fake_redis):
        await cache.set("k", [1], 60)

        fake_redis.advance(59)
        assert await cache.get("k") == [1]

        fake_redis.advance(1)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_empty_list_is_a_hit(self, cache):
        """A cached empty result is distinct from a miss."""
        await cache.set("k", [], 60)

        assert await cache.get("k") == []

    @pytest.mark.asyncio
    async def test_read_failure_is_a_miss(self, cache, fake_redis):
        await cache.set("k", [1], 60)
        fake_redis.fail_reads = True

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_a_miss(self, cache, fake_redis):
        await fake_redis.setex("k", 60, "{not json")

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, cache, fake_redis):
        fake_redis.fail_writes = True

        with pytest.raises(RedisError):
            await cache.set("k", [1], 60)

    @pytest.mark.asyncio
    async def test_flags(self, cache, fake_redis):
        key = f"{CacheKeys.ACCOUNT_TIMEOUT}a1"

        assert await cache.has_flag(key) is False
        await cache.set_flag(key, 10)
        assert await cache.has_flag(key) is True

        fake_redis.advance(10)
        assert await cache.has_flag(key) is False

    @pytest.mark.asyncio
    async def test_delete_and_close(self, cache, fake_redis):
        await cache.set("k", 1, 60)

        assert await cache.delete("k") is True
        assert await cache.delete("k") is False

        await cache.close()
        assert fake_redis.closed is True

    def test_from_url(self):
        cache = RedisCache.from_url("redis://localhost:6379/0")

        assert cache.client is not None
