"""Redirect resolver tests: cache-first lookup, fallback and click recording."""

import datetime
from unittest.mock import AsyncMock

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.exceptions import UnsafeDestinationError, UpstreamUnavailableError
from shortly.models import ShortLink, utcnow
from shortly.resolver import RedirectResolver, RequestMeta
from shortly.store import LinkStore

META = RequestMeta(ip="203.0.113.9", user_agent="Mozilla/5.0 (iPhone) Safari/604.1", referer="https://ref.example")


@pytest.fixture
def resolver(cache: CacheLayer, store: LinkStore, settings: Settings) -> RedirectResolver:
    return RedirectResolver(cache, store, settings)


async def make_link(store: LinkStore, code: str = "abc1234", url: str = "https://example.com", **kwargs):
    kwargs.setdefault("expires_at", utcnow() + datetime.timedelta(days=1))
    return await store.create(code, url, "owner-1", **kwargs)


@pytest.mark.asyncio
async def test_miss_populates_cache_and_records_click(
    resolver: RedirectResolver, store: LinkStore, redis_client: FakeAsyncRedis
) -> None:
    link = await make_link(store)

    assert await resolver.resolve("abc1234", META) == "https://example.com"

    assert await redis_client.get("url:abc1234") == "https://example.com"
    history = await store.click_history(link.id)
    assert len(history) == 1
    assert history[0].ip == "203.0.113.9"
    assert history[0].device == "mobile"


@pytest.mark.asyncio
async def test_hit_skips_store_and_records_in_background(
    resolver: RedirectResolver, store: LinkStore, cache: CacheLayer
) -> None:
    link = await make_link(store)
    await cache.cache_url("abc1234", "https://example.com", 60)

    assert await resolver.resolve("abc1234", META) == "https://example.com"
    await resolver.drain()

    assert await cache.get_buffered_click_count("abc1234") == 1
    assert (await store.find_active("abc1234")).click_count == 1
    assert len(await store.click_history(link.id)) == 1


@pytest.mark.asyncio
async def test_hit_does_not_query_store(cache: CacheLayer, settings: Settings) -> None:
    store = AsyncMock(spec=LinkStore)
    store.record_click.return_value = True
    resolver = RedirectResolver(cache, store, settings)
    await cache.cache_url("abc1234", "https://example.com", 60)

    assert await resolver.resolve("abc1234", META) == "https://example.com"
    await resolver.drain()

    store.find_active.assert_not_awaited()
    store.record_click.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_code(resolver: RedirectResolver, redis_client: FakeAsyncRedis) -> None:
    assert await resolver.resolve("nope123", META) is None
    assert await redis_client.get("url:nope123") is None


@pytest.mark.asyncio
async def test_expired_link_not_resolved(resolver: RedirectResolver, store: LinkStore) -> None:
    await make_link(store, expires_at=utcnow() - datetime.timedelta(minutes=1))
    assert await resolver.resolve("abc1234", META) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["api", "health", "DOCS"])
async def test_reserved_codes_skip_lookups(code: str, settings: Settings) -> None:
    cache = AsyncMock(spec=CacheLayer)
    store = AsyncMock(spec=LinkStore)
    resolver = RedirectResolver(cache, store, settings)

    assert await resolver.resolve(code, META) is None
    cache.get_cached_url.assert_not_awaited()
    store.find_active.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_ttl_follows_remaining_lifetime(
    resolver: RedirectResolver, store: LinkStore, redis_client: FakeAsyncRedis
) -> None:
    await make_link(store, expires_at=utcnow() + datetime.timedelta(minutes=10))
    await resolver.resolve("abc1234", META)

    ttl = await redis_client.ttl("url:abc1234")
    assert 500 < ttl <= 600


@pytest.mark.asyncio
async def test_cache_ttl_floor_and_default(resolver: RedirectResolver, store: LinkStore) -> None:
    soon = await make_link(store, code="soon123", expires_at=utcnow() + datetime.timedelta(seconds=5))
    never = await make_link(store, code="never12", expires_at=None)

    assert resolver.cache_ttl_for(soon) == 60
    assert resolver.cache_ttl_for(never) == 3600


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "javascript:alert(1)",
        "JavaScript:alert(1)",
        "FTP://files.example",
        "data:text/html,<script>alert(1)</script>",
        "file:///etc/passwd",
    ],
)
async def test_unsafe_stored_destination_rejected(resolver: RedirectResolver, store: LinkStore, url: str) -> None:
    link = await make_link(store, url=url)

    with pytest.raises(UnsafeDestinationError):
        await resolver.resolve("abc1234", META)

    assert await store.click_history(link.id) == []
    assert (await store.find_active("abc1234")).click_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["ftp://files.example", "JavaScript:alert(1)", "data:text/plain,hi"])
async def test_unsafe_cached_destination_rejected(cache: CacheLayer, settings: Settings, url: str) -> None:
    store = AsyncMock(spec=LinkStore)
    resolver = RedirectResolver(cache, store, settings)
    await cache.cache_url("abc1234", url, 60)

    with pytest.raises(UnsafeDestinationError):
        await resolver.resolve("abc1234", META)
    await resolver.drain()

    store.record_click.assert_not_awaited()
    assert await cache.get_buffered_click_count("abc1234") == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["HTTPS://Example.com/Path", "Http://example.com"])
async def test_mixed_case_safe_scheme_resolves(resolver: RedirectResolver, store: LinkStore, url: str) -> None:
    await make_link(store, url=url)

    assert await resolver.resolve("abc1234", META) == url
    assert await resolver.resolve("abc1234", META) == url
    await resolver.drain()


@pytest.mark.asyncio
async def test_cache_outage_falls_back_to_store(
    resolver: RedirectResolver, store: LinkStore, redis_server: FakeServer
) -> None:
    link = await make_link(store)
    redis_server.connected = False

    assert await resolver.resolve("abc1234", META) == "https://example.com"
    assert len(await store.click_history(link.id)) == 1


@pytest.mark.asyncio
async def test_click_failure_does_not_fail_redirect(cache: CacheLayer, settings: Settings) -> None:
    store = AsyncMock(spec=LinkStore)
    store.find_active.return_value = ShortLink(
        id=1,
        short_code="abc1234",
        original_url="https://example.com",
        owner_id="owner-1",
        expires_at=None,
    )
    store.record_click.side_effect = UpstreamUnavailableError("down")
    resolver = RedirectResolver(cache, store, settings)

    assert await resolver.resolve("abc1234", META) == "https://example.com"
    store.record_click.assert_awaited_once()


@pytest.mark.asyncio
async def test_background_failure_does_not_fail_redirect(cache: CacheLayer, settings: Settings) -> None:
    store = AsyncMock(spec=LinkStore)
    store.record_click.side_effect = RuntimeError("boom")
    resolver = RedirectResolver(cache, store, settings)
    await cache.cache_url("abc1234", "https://example.com", 60)

    assert await resolver.resolve("abc1234", META) == "https://example.com"
    await resolver.drain()
    assert resolver.pending == 0


@pytest.mark.asyncio
async def test_store_outage_on_miss_propagates(cache: CacheLayer, settings: Settings) -> None:
    store = AsyncMock(spec=LinkStore)
    store.find_active.side_effect = UpstreamUnavailableError("Persistent store unavailable")
    resolver = RedirectResolver(cache, store, settings)

    with pytest.raises(UpstreamUnavailableError):
        await resolver.resolve("abc1234", META)
