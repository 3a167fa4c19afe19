"""Passive expiry sweep tests."""

import asyncio
import datetime
from unittest.mock import AsyncMock

import pytest

from shortly.cache import CacheLayer
from shortly.enums import CacheStatus
from shortly.models import utcnow
from shortly.schemas import BufferedClick
from shortly.store import LinkStore
from shortly.sweeper import ExpirySweeper


@pytest.mark.asyncio
async def test_sweep_removes_expired_links_and_cache(store: LinkStore, cache: CacheLayer, settings) -> None:
    past = utcnow() - datetime.timedelta(hours=1)
    await store.create("gone123", "https://example.com", "owner-1", expires_at=past)
    await store.create("live123", "https://example.com", "owner-1", expires_at=utcnow() + datetime.timedelta(days=1))
    await cache.cache_url("gone123", "https://example.com", 60)
    await cache.buffer_click("gone123", BufferedClick(timestamp=1))

    swept = await ExpirySweeper(store, cache, settings).sweep_once()

    assert swept == 1
    assert (await cache.get_cached_url("gone123")).status is CacheStatus.MISS
    assert await cache.get_buffered_click_count("gone123") == 0
    assert await store.get_owned("gone123", "owner-1") is None
    assert await store.get_owned("live123", "owner-1") is not None


@pytest.mark.asyncio
async def test_run_loop_drains_full_batches(cache: CacheLayer, settings_factory) -> None:
    settings = settings_factory(EXPIRY_SWEEP_BATCH_SIZE=2, EXPIRY_SWEEP_INTERVAL_SECONDS=3600)
    store = AsyncMock(spec=LinkStore)
    store.purge_expired.side_effect = [["a", "b"], ["c", "d"], ["e"], []]
    sweeper = ExpirySweeper(store, cache, settings)

    sweeper.start()
    for _ in range(50):
        if store.purge_expired.await_count >= 3:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert store.purge_expired.await_count == 3
    assert not sweeper.running


@pytest.mark.asyncio
async def test_run_loop_survives_store_errors(cache: CacheLayer, settings_factory) -> None:
    settings = settings_factory(EXPIRY_SWEEP_INTERVAL_SECONDS=0)
    store = AsyncMock(spec=LinkStore)
    store.purge_expired.side_effect = [RuntimeError("db down"), []]
    sweeper = ExpirySweeper(store, cache, settings)

    sweeper.start()
    for _ in range(50):
        if store.purge_expired.await_count >= 2:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert store.purge_expired.await_count >= 2
