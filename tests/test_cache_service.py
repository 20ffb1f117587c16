"""Unit tests for the fail-open cache backends and DiscoveryCache keys."""
import asyncio
import json
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cupid.services import cache_service
from cupid.services.cache_service import DiscoveryCache, NullCache, RedisCache


async def _aiter(items):
    for item in items:
        yield item


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=0)
    client.scan_iter = MagicMock(side_effect=lambda match: _aiter([]))
    return client


class TestNullCache:

    @pytest.mark.asyncio
    async def test_every_read_is_a_miss(self):
        backend = NullCache()
        await backend.set("feed:x:20", "[]", 300)
        assert await backend.get("feed:x:20") is None
        assert await backend.invalidate_pattern("feed:*") == 0


class TestRedisCache:

    @pytest.mark.asyncio
    async def test_get_hit(self, redis_client):
        redis_client.get.return_value = '{"count": 3}'
        backend = RedisCache(redis_client, timeout_seconds=0.5)
        assert await backend.get("feed-count:u") == '{"count": 3}'
        redis_client.get.assert_awaited_once_with("feed-count:u")

    @pytest.mark.asyncio
    async def test_get_error_is_a_miss(self, redis_client):
        redis_client.get.side_effect = ConnectionError("redis down")
        backend = RedisCache(redis_client, timeout_seconds=0.5)
        assert await backend.get("feed:u:20") is None

    @pytest.mark.asyncio
    async def test_get_timeout_is_a_miss(self, redis_client):
        async def _slow(key):
            await asyncio.sleep(1)
            return "late"

        redis_client.get.side_effect = _slow
        backend = RedisCache(redis_client, timeout_seconds=0.01)
        assert await backend.get("feed:u:20") is None

    @pytest.mark.asyncio
    async def test_set_uses_setex_with_ttl(self, redis_client):
        backend = RedisCache(redis_client, timeout_seconds=0.5)
        await backend.set("matches:u", "[]", 300)
        redis_client.setex.assert_awaited_once_with("matches:u", 300, "[]")

    @pytest.mark.asyncio
    async def test_set_error_is_swallowed(self, redis_client):
        redis_client.setex.side_effect = ConnectionError("redis down")
        backend = RedisCache(redis_client, timeout_seconds=0.5)
        await backend.set("matches:u", "[]", 300)  # must not raise

    @pytest.mark.asyncio
    async def test_set_synchronous_client_error_is_swallowed(self, redis_client):
        redis_client.setex = MagicMock(side_effect=RuntimeError("pool closed"))
        backend = RedisCache(redis_client, timeout_seconds=0.5)
        await backend.set("matches:u", "[]", 300)

    @pytest.mark.asyncio
    async def test_invalidate_pattern_scans_then_deletes(self, redis_client):
        redis_client.scan_iter.side_effect = lambda match: _aiter(
            ["feed:u:10", "feed:u:20"]
        )
        redis_client.delete.return_value = 2
        backend = RedisCache(redis_client, timeout_seconds=0.5)

        removed = await backend.invalidate_pattern("feed:u:*")

        assert removed == 2
        redis_client.scan_iter.assert_called_once_with(match="feed:u:*")
        redis_client.delete.assert_awaited_once_with("feed:u:10", "feed:u:20")

    @pytest.mark.asyncio
    async def test_invalidate_pattern_without_matches_skips_delete(self, redis_client):
        backend = RedisCache(redis_client, timeout_seconds=0.5)
        assert await backend.invalidate_pattern("feed:nobody:*") == 0
        redis_client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalidate_error_is_swallowed(self, redis_client):
        redis_client.scan_iter.side_effect = ConnectionError("redis down")
        backend = RedisCache(redis_client, timeout_seconds=0.5)
        assert await backend.invalidate_pattern("feed:u:*") == 0


class TestDiscoveryCache:

    def test_key_layout(self):
        uid = uuid.UUID("00000000-0000-0000-0000-000000000001")
        assert DiscoveryCache.feed_key(uid, 20) == f"feed:{uid}:20"
        assert DiscoveryCache.feed_count_key(uid) == f"feed-count:{uid}"
        assert DiscoveryCache.matches_key(uid) == f"matches:{uid}"
        assert DiscoveryCache.messages_key(uid) == f"messages:{uid}"

    def test_ttls_from_settings(self):
        cache = DiscoveryCache()
        assert cache.feed_ttl == 300
        assert cache.feed_count_ttl == 600
        assert cache.match_list_ttl == 300

    @pytest.mark.asyncio
    async def test_json_round_trip(self, cache):
        await cache.set_json("feed-count:u", 7, 600)
        assert await cache.get_json("feed-count:u") == 7

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, cache, memory_backend):
        memory_backend.store["feed:u:20"] = "{not json"
        assert await cache.get_json("feed:u:20") is None

    @pytest.mark.asyncio
    async def test_invalidate_feed_drops_every_page_and_count(self, cache, memory_backend):
        uid = uuid.uuid4()
        other = uuid.uuid4()
        for key in (
            cache.feed_key(uid, 10),
            cache.feed_key(uid, 20),
            cache.feed_count_key(uid),
            cache.feed_key(other, 20),
            cache.matches_key(uid),
        ):
            memory_backend.store[key] = json.dumps([])

        removed = await cache.invalidate_feed(uid)

        assert removed == 3
        assert set(memory_backend.store) == {
            cache.feed_key(other, 20),
            cache.matches_key(uid),
        }

    @pytest.mark.asyncio
    async def test_invalidate_matches_for_both_participants(self):
        backend = MagicMock()
        backend.invalidate_pattern = AsyncMock(return_value=1)
        cache = DiscoveryCache(backend)
        a, b = uuid.uuid4(), uuid.uuid4()

        assert await cache.invalidate_matches(a, b) == 2
        backend.invalidate_pattern.assert_any_await(f"matches:{a}")
        backend.invalidate_pattern.assert_any_await(f"matches:{b}")

    @pytest.mark.asyncio
    async def test_invalidate_messages(self):
        backend = MagicMock()
        backend.invalidate_pattern = AsyncMock(return_value=1)
        cache = DiscoveryCache(backend)
        match_id = uuid.uuid4()

        await cache.invalidate_messages(match_id)
        backend.invalidate_pattern.assert_awaited_once_with(f"messages:{match_id}")


class TestGetCache:

    def test_null_backend_without_client(self):
        with patch.object(cache_service, "_redis_client", None):
            cache = cache_service.get_cache()
        assert isinstance(cache.backend, NullCache)

    def test_redis_backend_with_client(self, redis_client):
        with patch.object(cache_service, "_redis_client", redis_client):
            cache = cache_service.get_cache()
        assert isinstance(cache.backend, RedisCache)

    @pytest.mark.asyncio
    async def test_connect_skipped_when_disabled(self):
        settings = MagicMock(CACHE_ENABLED=False)
        with patch.object(cache_service, "get_settings", return_value=settings), \
             patch.object(cache_service, "_redis_client", None):
            await cache_service.connect_redis()
            assert cache_service.get_redis() is None
