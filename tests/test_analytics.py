"""Analytics aggregation tests."""

import datetime

import pytest

from shortly.analytics import AnalyticsAggregator, summarize_clicks
from shortly.cache import CacheLayer
from shortly.models import ClickEvent, utcnow
from shortly.schemas import BufferedClick
from shortly.store import LinkStore
from shortly.user_agent import ClientInfo


def click(day: datetime.date, device: str | None = "desktop", browser: str | None = "Chrome", country=None):
    return ClickEvent(
        link_id=1,
        timestamp=datetime.datetime.combine(day, datetime.time(12), tzinfo=datetime.UTC),
        device=device,
        browser=browser,
        country=country,
    )


def as_pairs(buckets) -> list[tuple[str, int]]:
    return [(b.key, b.count) for b in buckets]


def test_days_are_ascending_and_capped_at_30() -> None:
    start = datetime.date(2024, 1, 1)
    clicks = [click(start + datetime.timedelta(days=i)) for i in range(40)]
    clicks.append(click(start + datetime.timedelta(days=39)))

    summary = summarize_clicks(clicks, total_clicks=len(clicks))

    keys = [b.key for b in summary.clicks_by_day]
    assert len(keys) == 30
    assert keys[0] == "2024-01-11"
    assert keys[-1] == "2024-02-09"
    assert summary.clicks_by_day[-1].count == 2


def test_ranked_buckets_order_and_fallbacks() -> None:
    day = datetime.date(2024, 5, 1)
    clicks = [
        click(day, device="mobile", browser="Safari"),
        click(day, device="desktop", browser="Chrome"),
        click(day, device="desktop", browser=None),
        click(day, device=None, browser="Chrome", country="NL"),
    ]

    summary = summarize_clicks(clicks, total_clicks=4)

    assert as_pairs(summary.clicks_by_device) == [("desktop", 2), ("mobile", 1), ("unknown", 1)]
    assert as_pairs(summary.clicks_by_browser) == [("Chrome", 2), ("Safari", 1), ("unknown", 1)]
    assert as_pairs(summary.clicks_by_country) == [("Unknown", 3), ("NL", 1)]


def test_country_buckets_capped_at_10() -> None:
    day = datetime.date(2024, 5, 1)
    clicks = [click(day, country=f"C{i:02d}") for i in range(15)]

    summary = summarize_clicks(clicks, total_clicks=15)

    assert len(summary.clicks_by_country) == 10
    assert summary.clicks_by_country[0].key == "C00"


def test_empty_history() -> None:
    summary = summarize_clicks([], total_clicks=0)

    assert summary.total_clicks == 0
    assert summary.clicks_by_day == []
    assert summary.clicks_by_device == []


@pytest.mark.asyncio
async def test_get_analytics_requires_owner(store: LinkStore, cache: CacheLayer) -> None:
    await store.create("abc1234", "https://example.com", "owner-1")
    aggregator = AnalyticsAggregator(store, cache)

    assert await aggregator.get_analytics("abc1234", "owner-2") is None
    assert await aggregator.get_analytics("missing", "owner-1") is None


@pytest.mark.asyncio
async def test_get_analytics_summarizes_history(store: LinkStore, cache: CacheLayer) -> None:
    expires_at = utcnow() + datetime.timedelta(days=3)
    await store.create("abc1234", "https://example.com", "owner-1", expires_at=expires_at)
    for client in [
        ClientInfo("mobile", "Safari", "iOS"),
        ClientInfo("mobile", "Chrome", "Android"),
        ClientInfo("desktop", "Chrome", "Windows"),
    ]:
        await store.record_click("abc1234", client)
    await cache.buffer_click("abc1234", BufferedClick(timestamp=1))

    summary = await AnalyticsAggregator(store, cache).get_analytics("abc1234", "owner-1")

    assert summary.url.short_code == "abc1234"
    assert summary.url.click_count == 3
    assert summary.url.expires_at.tzinfo is not None
    assert summary.analytics.total_clicks == 3
    assert summary.analytics.buffered_clicks == 1
    assert as_pairs(summary.analytics.clicks_by_device) == [("mobile", 2), ("desktop", 1)]
    assert as_pairs(summary.analytics.clicks_by_browser) == [("Chrome", 2), ("Safari", 1)]
    assert as_pairs(summary.analytics.clicks_by_country) == [("Unknown", 3)]
    assert as_pairs(summary.analytics.clicks_by_day) == [(utcnow().date().isoformat(), 3)]
