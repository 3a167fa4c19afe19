"""On-demand click analytics for a single owned link.

Flow Diagram: get_analytics()
==============================
::
    ┌──────────────┐
    │ get_owned()  │──► None (404: unknown code or not the owner)
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ click_history│
    └──────┬───────┘
           ▼
    ┌──────────────┐     ┌────────────────────┐
    │ summarize_   │◄────│ buffered click     │
    │ clicks()     │     │ counter (Redis)    │
    └──────┬───────┘     └────────────────────┘
           ▼
    ┌──────────────┐
    │ Analytics    │
    │ Summary      │
    └──────────────┘

Key Behaviours
===============
- Day buckets are UTC dates (YYYY-MM-DD), the 30 most recent, ascending.
- Country buckets fall back to "Unknown" (geo lookup is not performed),
  device and browser buckets fall back to "unknown".
- Ranked buckets are ordered by count descending; ties keep the order in
  which keys were first seen in the click history.
- The buffered click count is informational and is 0 when Redis is down.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence

from shortly.cache import CacheLayer
from shortly.models import ClickEvent, ShortLink, as_utc
from shortly.schemas import AnalyticsBreakdown, AnalyticsLink, AnalyticsSummary, BucketCount
from shortly.store import LinkStore
from shortly.user_agent import UNKNOWN

__all__ = ["AnalyticsAggregator", "summarize_clicks"]

logger = logging.getLogger("shortly.analytics")

MAX_DAY_BUCKETS = 30
MAX_COUNTRY_BUCKETS = 10
UNKNOWN_COUNTRY = "Unknown"


def _buckets(counter: Counter, limit: int | None = None) -> list[BucketCount]:
    return [BucketCount(key=key, count=count) for key, count in counter.most_common(limit)]


def _days(clicks: Iterable[ClickEvent]) -> list[BucketCount]:
    by_day = Counter(as_utc(click.timestamp).date().isoformat() for click in clicks)
    recent = sorted(by_day)[-MAX_DAY_BUCKETS:]
    return [BucketCount(key=day, count=by_day[day]) for day in recent]


def summarize_clicks(
    clicks: Sequence[ClickEvent], total_clicks: int, buffered_clicks: int = 0
) -> AnalyticsBreakdown:
    return AnalyticsBreakdown(
        total_clicks=total_clicks,
        buffered_clicks=buffered_clicks,
        clicks_by_day=_days(clicks),
        clicks_by_country=_buckets(
            Counter(click.country or UNKNOWN_COUNTRY for click in clicks), MAX_COUNTRY_BUCKETS
        ),
        clicks_by_device=_buckets(Counter(click.device or UNKNOWN for click in clicks)),
        clicks_by_browser=_buckets(Counter(click.browser or UNKNOWN for click in clicks)),
    )


def describe_link(link: ShortLink) -> AnalyticsLink:
    return AnalyticsLink(
        short_code=link.short_code,
        original_url=link.original_url,
        click_count=link.click_count,
        created_at=as_utc(link.created_at),
        expires_at=as_utc(link.expires_at),
        is_active=link.is_active,
    )


class AnalyticsAggregator:
    def __init__(self, store: LinkStore, cache: CacheLayer) -> None:
        self._store = store
        self._cache = cache

    async def get_analytics(self, code: str, owner_id: str) -> AnalyticsSummary | None:
        """Summarize the click history of ``code`` for its owner.

        Returns None when the link does not exist or belongs to someone else.
        """
        link = await self._store.get_owned(code, owner_id)
        if link is None:
            return None

        clicks = await self._store.click_history(link.id)
        buffered = await self._cache.get_buffered_click_count(code)
        logger.debug(f"Aggregated {len(clicks)} clicks for {code}")
        return AnalyticsSummary(
            url=describe_link(link),
            analytics=summarize_clicks(clicks, link.click_count, buffered),
        )
