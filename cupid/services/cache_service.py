"""
Cupid Discovery — Cache Coherency Layer

A fail-open read-through / write-invalidate cache in front of the ranking
engine and the match registry.

  1. **Backends** — ``RedisCache`` talks to Redis; ``NullCache`` is a no-op
     used when caching is disabled or Redis never came up.  Both expose
     ``get`` / ``set`` / ``invalidate_pattern``.

  2. **Fail-open policy** — any backend error or timeout on read is a miss;
     on write or invalidate it is logged as ``cache_degraded`` and swallowed.
     A cache outage costs latency, never correctness.

  3. **Key ownership** — ``DiscoveryCache`` is the only place cache keys are
     built.  Every mutation path calls one of its named invalidation
     operations instead of re-deriving key strings.

Key layout:
    feed:{user_id}:{limit}      ranked feed (per query shape)
    feed-count:{user_id}        eligible candidate count
    matches:{user_id}           active match list
    messages:{match_id}         chat cache owned by the messaging service
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, Awaitable, Callable

import structlog

from cupid.config import get_settings
from cupid.errors import CacheDegraded

logger = structlog.get_logger("cupid.cache_service")

# ──────────────────────────────────────────────────────────────────────────────
# Backends
# ──────────────────────────────────────────────────────────────────────────────


class NullCache:
    """Cache backend that stores nothing.  Every read is a miss."""

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        return None

    async def invalidate_pattern(self, pattern: str) -> int:
        return 0


class RedisCache:
    """Fail-open wrapper around an async Redis client.

    Every call is bounded by ``timeout_seconds``.  Failures are raised
    internally as ``CacheDegraded`` and converted to a miss / no-op at this
    class's boundary, so callers never see a cache error.
    """

    def __init__(self, client: Any, timeout_seconds: float | None = None) -> None:
        self._client = client
        self._timeout = (
            timeout_seconds
            if timeout_seconds is not None
            else get_settings().CACHE_TIMEOUT_SECONDS
        )

    async def _call(
        self,
        operation: str,
        key: str,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            return await asyncio.wait_for(call(), timeout=self._timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise CacheDegraded(
                f"cache {operation} failed", key=key, error_type=type(exc).__name__
            ) from exc

    @staticmethod
    def _log_degraded(exc: CacheDegraded, operation: str) -> None:
        logger.warning(
            "cache_degraded",
            operation=operation,
            **exc.context,
        )

    async def get(self, key: str) -> str | None:
        try:
            return await self._call("get", key, lambda: self._client.get(key))
        except CacheDegraded as exc:
            self._log_degraded(exc, "get")
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._call(
                "set", key, lambda: self._client.setex(key, ttl_seconds, value)
            )
        except CacheDegraded as exc:
            self._log_degraded(exc, "set")

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``; returns the number removed.

        Uses ``SCAN`` rather than ``KEYS`` so large keyspaces do not block
        the Redis event loop.
        """
        try:
            return await self._call(
                "invalidate", pattern, lambda: self._delete_matching(pattern)
            )
        except CacheDegraded as exc:
            self._log_degraded(exc, "invalidate")
            return 0

    async def _delete_matching(self, pattern: str) -> int:
        keys = [key async for key in self._client.scan_iter(match=pattern)]
        if not keys:
            return 0
        removed = await self._client.delete(*keys)
        logger.debug("cache_pattern_invalidated", pattern=pattern, count=removed)
        return int(removed)


# ──────────────────────────────────────────────────────────────────────────────
# Key construction & named invalidation operations
# ──────────────────────────────────────────────────────────────────────────────


class DiscoveryCache:
    """Typed façade over a cache backend that owns every key format."""

    def __init__(self, backend: NullCache | RedisCache | None = None) -> None:
        self.backend = backend if backend is not None else NullCache()
        settings = get_settings()
        self.feed_ttl: int = settings.FEED_CACHE_TTL_SECONDS
        self.feed_count_ttl: int = settings.FEED_COUNT_CACHE_TTL_SECONDS
        self.match_list_ttl: int = settings.MATCH_LIST_CACHE_TTL_SECONDS

    # ── Keys ──────────────────────────────────────────────────────────────

    @staticmethod
    def feed_key(user_id: uuid.UUID | str, limit: int) -> str:
        return f"feed:{user_id}:{limit}"

    @staticmethod
    def feed_count_key(user_id: uuid.UUID | str) -> str:
        return f"feed-count:{user_id}"

    @staticmethod
    def matches_key(user_id: uuid.UUID | str) -> str:
        return f"matches:{user_id}"

    @staticmethod
    def messages_key(match_id: uuid.UUID | str) -> str:
        return f"messages:{match_id}"

    # ── JSON read-through helpers ─────────────────────────────────────────

    async def get_json(self, key: str) -> Any | None:
        raw = await self.backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            # Corrupt entry: behave as a miss and let the caller overwrite it.
            logger.warning("cache_entry_unreadable", key=key)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.backend.set(key, json.dumps(value), ttl_seconds)

    # ── Named invalidation operations ─────────────────────────────────────

    async def invalidate_feed(self, user_id: uuid.UUID | str) -> int:
        """Drop every cached feed page and the feed count for ``user_id``."""
        removed = await self.backend.invalidate_pattern(f"feed:{user_id}:*")
        removed += await self.backend.invalidate_pattern(self.feed_count_key(user_id))
        return removed

    async def invalidate_matches(self, *user_ids: uuid.UUID | str) -> int:
        """Drop the cached match lists of every given participant."""
        removed = 0
        for user_id in user_ids:
            removed += await self.backend.invalidate_pattern(self.matches_key(user_id))
        return removed

    async def invalidate_messages(self, match_id: uuid.UUID | str) -> int:
        return await self.backend.invalidate_pattern(self.messages_key(match_id))


# ──────────────────────────────────────────────────────────────────────────────
# Redis client lifecycle
# ──────────────────────────────────────────────────────────────────────────────

_redis_client = None


async def connect_redis() -> None:
    """Create the shared Redis client.

    An unreachable Redis at startup is logged, not raised: the client is kept
    so it can reconnect later and every call fails open in the meantime.
    """
    global _redis_client
    import redis.asyncio as aioredis

    settings = get_settings()
    if not settings.CACHE_ENABLED:
        logger.info("redis_skip", reason="CACHE_ENABLED is false")
        return

    _redis_client = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=settings.CACHE_TIMEOUT_SECONDS,
    )
    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.REDIS_URL)
    except Exception as exc:
        logger.warning(
            "redis_unavailable",
            url=settings.REDIS_URL,
            error_type=type(exc).__name__,
            note="running with fail-open cache",
        )


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_closed")


def get_redis():
    """Return the shared Redis client (for use in health checks, etc.)."""
    return _redis_client


def get_cache() -> DiscoveryCache:
    """FastAPI dependency: a ``DiscoveryCache`` over Redis, or over
    ``NullCache`` when no Redis client exists."""
    client = get_redis()
    if client is None:
        return DiscoveryCache(NullCache())
    return DiscoveryCache(RedisCache(client))
