"""Redis cache layer: URL cache, rate-limit windows, click buffer, token revocation.

The cache is never authoritative. Every operation degrades gracefully: a
Redis transport failure is logged, counted and turned into an
"unknown/unavailable" return value so callers can fall back to the store
(or fail open) and a cache outage never becomes a user-visible failure.

Key Layout
==========
::
    url:{code}                 STRING  original URL, EX = remaining lifetime
    rl:{bucket}:{identifier}   ZSET    admitted request timestamps (ms), PEXPIRE window
    clicks:{code}              LIST    JSON click payloads, EX 300s
    clicks:count:{code}        STRING  buffered click counter, EX 300s
    blacklist:{sha256(token)}  STRING  "1", EX = token remaining lifetime

Flow Diagram: check_rate_limit()
=================================
::
    ┌──────────────────────────────┐
    │ EVALSHA sliding_window.lua   │  (one atomic unit per identifier)
    │  1. ZREMRANGEBYSCORE <= now-w│
    │  2. ZCARD                    │
    │  3. ZADD now  (if count < max│
    │  4. PEXPIRE w                │
    └──────────────┬───────────────┘
           ┌───────┴────────┐
           │ RedisError?    │
           ▼                ▼
    ┌─────────────┐  ┌─────────────┐
    │ fail open   │  │ allowed,    │
    │ allowed=True│  │ remaining,  │
    └─────────────┘  │ reset_time  │
                     └─────────────┘

How to Use
===========
**Step 1: Build once at startup**::
    cache = CacheLayer(create_redis_client(settings), settings)

**Step 2: Cache-first lookup**::
    lookup = await cache.get_cached_url("abc1234")
    if lookup.status is CacheStatus.HIT:
        return lookup.url

**Step 3: Throttle**::
    result = await cache.check_rate_limit("create:10.0.0.1", 30, 60_000)

Key Behaviours
===============
- MISS and UNAVAILABLE are distinct statuses but both mean "ask the store".
- The rate-limit window and the click buffer are updated by single
  server-side atomic units (Lua script, MULTI pipeline).
- Rate limiting fails open; token revocation checks fail open.
- flush_click_buffer is an atomic read-and-clear.
"""

import hashlib
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from shortly.config import Settings
from shortly.enums import CacheStatus
from shortly.metrics import CACHE_ERRORS_TOTAL
from shortly.schemas import BufferedClick

__all__ = ["CacheLayer", "CacheLookup", "RateLimitResult"]

logger = logging.getLogger("shortly.cache")

URL_PREFIX = "url:"
RATE_LIMIT_PREFIX = "rl:"
CLICK_BUFFER_PREFIX = "clicks:"
CLICK_COUNT_PREFIX = "clicks:count:"
BLACKLIST_PREFIX = "blacklist:"

CACHE_ERRORS = (RedisError, OSError)

# KEYS[1] window key; ARGV: now_ms, window_ms, max_requests, member
SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, ARGV[4])
    allowed = 1
end
redis.call('PEXPIRE', key, window)
return {allowed, count}
"""


class CacheLookup(NamedTuple):
    status: CacheStatus
    url: str | None = None


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds


def _token_key(token: str) -> str:
    return BLACKLIST_PREFIX + hashlib.sha256(token.encode("utf-8")).hexdigest()


class CacheLayer:
    """Fast-path store for code→URL plus the shared counters of the service.

    Args:
        client: Redis client, or None when Redis is disabled.
        settings: Application settings (TTLs).
        clock: Seconds-since-epoch source, injectable for tests.
    """

    def __init__(
        self,
        client: redis.Redis | None,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._settings = settings
        self._clock = clock
        self._sliding_window = client.register_script(SLIDING_WINDOW_LUA) if client is not None else None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _failed(self, operation: str, exc: Exception) -> None:
        CACHE_ERRORS_TOTAL.labels(operation=operation).inc()
        logger.warning(f"Redis {operation} failed: {exc}")

    # ------------------------------------------------------------------
    # URL cache
    # ------------------------------------------------------------------

    async def cache_url(self, code: str, url: str, ttl_seconds: int | None = None) -> bool:
        if self._client is None:
            return False
        ttl = ttl_seconds if ttl_seconds and ttl_seconds > 0 else self._settings.URL_CACHE_TTL_SECONDS
        try:
            await self._client.set(f"{URL_PREFIX}{code}", url, ex=ttl)
            return True
        except CACHE_ERRORS as exc:
            self._failed("cache_url", exc)
            return False

    async def get_cached_url(self, code: str) -> CacheLookup:
        if self._client is None:
            return CacheLookup(CacheStatus.UNAVAILABLE)
        try:
            url = await self._client.get(f"{URL_PREFIX}{code}")
        except CACHE_ERRORS as exc:
            self._failed("get_cached_url", exc)
            return CacheLookup(CacheStatus.UNAVAILABLE)
        if url is None:
            return CacheLookup(CacheStatus.MISS)
        return CacheLookup(CacheStatus.HIT, url)

    async def invalidate(self, code: str) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.delete(f"{URL_PREFIX}{code}")
            return True
        except CACHE_ERRORS as exc:
            self._failed("invalidate", exc)
            return False

    # ------------------------------------------------------------------
    # Distributed rate limiting
    # ------------------------------------------------------------------

    async def check_rate_limit(self, identifier: str, max_requests: int, window_ms: int) -> RateLimitResult:
        now_ms = int(self._clock() * 1000)
        reset_time = now_ms + window_ms
        if self._sliding_window is None:
            return RateLimitResult(allowed=True, remaining=max_requests, reset_time=reset_time)

        member = f"{now_ms}-{uuid.uuid4().hex}"
        try:
            allowed, count = await self._sliding_window(
                keys=[f"{RATE_LIMIT_PREFIX}{identifier}"],
                args=[now_ms, window_ms, max_requests, member],
            )
        except CACHE_ERRORS as exc:
            self._failed("check_rate_limit", exc)
            return RateLimitResult(allowed=True, remaining=max_requests, reset_time=reset_time)

        admitted = bool(int(allowed))
        remaining = max(0, max_requests - int(count) - 1) if admitted else 0
        return RateLimitResult(allowed=admitted, remaining=remaining, reset_time=reset_time)

    # ------------------------------------------------------------------
    # Click buffering
    # ------------------------------------------------------------------

    async def buffer_click(self, code: str, event: BufferedClick) -> bool:
        if self._client is None:
            return False
        ttl = self._settings.CLICK_BUFFER_TTL_SECONDS
        list_key = f"{CLICK_BUFFER_PREFIX}{code}"
        count_key = f"{CLICK_COUNT_PREFIX}{code}"
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await (
                    pipe.rpush(list_key, event.model_dump_json())
                    .expire(list_key, ttl)
                    .incr(count_key)
                    .expire(count_key, ttl)
                    .execute()
                )
            return True
        except CACHE_ERRORS as exc:
            self._failed("buffer_click", exc)
            return False

    async def flush_click_buffer(self, code: str) -> list[BufferedClick]:
        if self._client is None:
            return []
        list_key = f"{CLICK_BUFFER_PREFIX}{code}"
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                raw, _, _ = await (
                    pipe.lrange(list_key, 0, -1)
                    .delete(list_key)
                    .delete(f"{CLICK_COUNT_PREFIX}{code}")
                    .execute()
                )
        except CACHE_ERRORS as exc:
            self._failed("flush_click_buffer", exc)
            return []

        events: list[BufferedClick] = []
        for item in raw or []:
            try:
                events.append(BufferedClick.model_validate_json(item))
            except PydanticValidationError as exc:
                logger.warning(f"Dropping malformed buffered click for {code}: {exc}")
        return events

    async def get_buffered_click_count(self, code: str) -> int:
        if self._client is None:
            return 0
        try:
            value = await self._client.get(f"{CLICK_COUNT_PREFIX}{code}")
        except CACHE_ERRORS as exc:
            self._failed("get_buffered_click_count", exc)
            return 0
        return int(value) if value else 0

    # ------------------------------------------------------------------
    # Token revocation
    # ------------------------------------------------------------------

    async def blacklist_token(self, token: str, ttl_seconds: int | None = None) -> bool:
        if self._client is None:
            return False
        ttl = ttl_seconds if ttl_seconds and ttl_seconds > 0 else self._settings.TOKEN_BLACKLIST_TTL_SECONDS
        try:
            await self._client.set(_token_key(token), "1", ex=ttl)
            return True
        except CACHE_ERRORS as exc:
            self._failed("blacklist_token", exc)
            return False

    async def is_blacklisted(self, token: str) -> bool:
        if self._client is None:
            return False
        try:
            return await self._client.exists(_token_key(token)) == 1
        except CACHE_ERRORS as exc:
            self._failed("is_blacklisted", exc)
            return False

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except CACHE_ERRORS as exc:
            self._failed("ping", exc)
            return False
