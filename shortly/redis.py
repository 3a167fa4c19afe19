"""Redis client construction for the shortly link service.

This module builds the process-scoped Redis client used by the cache layer.
The client is created once by the ServiceManager at startup and passed by
reference; there is no module-level client.

How to Use
===========
**Step 1: Build at startup**::
    client = create_redis_client(settings)
    cache = CacheLayer(client, settings)

**Step 2: Cleanup on shutdown**::
    await close_redis(client)

Key Behaviours
===============
- Returns None when REDIS_ENABLED is false; the cache layer then reports
  every operation as unavailable and callers fall back to the store.
- Socket and connect timeouts are bounded so a slow Redis cannot stall a
  redirect for longer than the configured timeout.
- UTF-8 encoding with decode_responses for string operations.

Functions:
    create_redis_client():  Builds the client from settings.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis

from shortly.config import Settings

__all__ = ["create_redis_client", "close_redis"]


def create_redis_client(settings: Settings) -> redis.Redis | None:
    if not settings.REDIS_ENABLED:
        return None
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


async def close_redis(client: redis.Redis | None) -> None:
    if client is not None:
        await client.aclose()
