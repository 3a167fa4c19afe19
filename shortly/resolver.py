"""Redirect resolution: the latency-critical short code → destination path.

Flow Diagram: resolve()
========================
::
    ┌─────────────┐
    │  GET /:code │
    └──────┬──────┘
           ▼
    ┌─────────────┐  reserved   ┌──────────┐
    │ Reserved    ├────────────►│ None     │
    │ path?       │             │ (404)    │
    └──────┬──────┘             └──────────┘
           ▼
    ┌─────────────┐
    │ Redis GET   │
    │ url:{code}  │
    └──────┬──────┘
    HIT?   │
    ┌──────┴───────────────┐
    │ YES                  │ NO / UNAVAILABLE
    │                      ▼
    │               ┌──────────────┐
    │               │ store.find_  │──► None (404)
    │               │ active()     │
    │               └──────┬───────┘
    │                      ▼
    │               ┌──────────────┐
    │               │ cache_url    │
    │               │ TTL=lifetime │
    │               └──────┬───────┘
    └──────────┬───────────┘
               ▼
       ┌───────────────┐
       │ http(s)://    │──► UnsafeDestinationError (400, no click)
       │ check         │
       └───────┬───────┘
               ▼
       ┌───────────────┐
       │ record click  │  HIT: background buffer + store write
       │               │  MISS: awaited store write
       └───────┬───────┘
               ▼
       ┌───────────────┐
       │ 302 Redirect  │
       └───────────────┘

Key Behaviours
===============
- Only a cache HIT skips the store; MISS and UNAVAILABLE both fall back.
- On a hit the click is buffered in Redis and written to the store by
  background tasks; the redirect never waits for them and their failures
  are only logged.
- On a miss the click is written before returning; a failed write is
  logged and swallowed, never failing the redirect.
- Cache TTL is the record's remaining lifetime with a 60s floor, 3600s
  when the record has no expiry. A record that expires while cached can
  be served until its cache entry lapses (bounded staleness).
- The destination is re-validated on every resolve, independent of how
  the record was created. A refused destination records no click.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.enums import CacheStatus, ClickOutcome
from shortly.exceptions import UnsafeDestinationError
from shortly.metrics import CLICKS_TOTAL, REDIRECTS_TOTAL, RESOLVE_DURATION
from shortly.models import ShortLink, as_utc, utcnow
from shortly.schemas import BufferedClick, has_safe_protocol
from shortly.shortcode import is_reserved
from shortly.store import LinkStore
from shortly.user_agent import ClientInfo, parse_user_agent

__all__ = ["RequestMeta", "RedirectResolver", "ensure_safe_destination"]

logger = logging.getLogger("shortly.resolver")


@dataclass(frozen=True)
class RequestMeta:
    ip: str | None = None
    user_agent: str | None = None
    referer: str | None = None


def ensure_safe_destination(url: str) -> str:
    if not has_safe_protocol(url):
        raise UnsafeDestinationError("Invalid destination URL protocol")
    return url


class RedirectResolver:
    """Cache-first resolver with asynchronous click recording.

    Args:
        cache: Cache layer (never raises).
        store: Persistent store, the source of truth.
        settings: Application settings (cache TTLs).
        parse_client: User-agent classifier.
    """

    def __init__(
        self,
        cache: CacheLayer,
        store: LinkStore,
        settings: Settings,
        parse_client: Callable[[str | None], ClientInfo] = parse_user_agent,
    ) -> None:
        self._cache = cache
        self._store = store
        self._settings = settings
        self._parse_client = parse_client
        self._background: set[asyncio.Task] = set()

    async def resolve(self, code: str, meta: RequestMeta) -> str | None:
        """Resolve ``code`` to its destination URL, recording the click.

        Returns:
            The destination URL, or None when the code is reserved, unknown,
            inactive or expired.

        Raises:
            UnsafeDestinationError: the stored destination is not http(s).
            UpstreamUnavailableError: the store is unreachable on a cache miss.
        """
        if is_reserved(code):
            REDIRECTS_TOTAL.labels(cache_status="reserved", found="false").inc()
            return None

        with RESOLVE_DURATION.time():
            lookup = await self._cache.get_cached_url(code)
            if lookup.status is CacheStatus.HIT:
                REDIRECTS_TOTAL.labels(cache_status=lookup.status, found="true").inc()
                url = ensure_safe_destination(lookup.url)
                self._spawn(self._buffer_click(code, meta), f"buffer-click:{code}")
                self._spawn(self._record_click(code, meta), f"record-click:{code}")
                return url

            link = await self._store.find_active(code)
            if link is None:
                REDIRECTS_TOTAL.labels(cache_status=lookup.status, found="false").inc()
                logger.debug(f"No active link for code: {code}")
                return None

            REDIRECTS_TOTAL.labels(cache_status=lookup.status, found="true").inc()
            await self._cache.cache_url(code, link.original_url, self.cache_ttl_for(link))
            url = ensure_safe_destination(link.original_url)
            await self._record_click(code, meta, link_id=link.id)
            return url

    def cache_ttl_for(self, link: ShortLink) -> int:
        expires_at = as_utc(link.expires_at)
        if expires_at is None:
            return self._settings.URL_CACHE_TTL_SECONDS
        remaining = int((expires_at - utcnow()).total_seconds())
        return max(remaining, self._settings.URL_CACHE_MIN_TTL_SECONDS)

    async def drain(self) -> None:
        """Wait for in-flight background click writes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------
    # Click recording
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            CLICKS_TOTAL.labels(outcome=ClickOutcome.FAILED).inc()
            logger.error(f"Background task {task.get_name()} failed: {exc!r}")

    async def _buffer_click(self, code: str, meta: RequestMeta) -> None:
        event = BufferedClick(
            timestamp=int(time.time() * 1000),
            ip=meta.ip,
            user_agent=meta.user_agent,
            referer=meta.referer,
        )
        if await self._cache.buffer_click(code, event):
            CLICKS_TOTAL.labels(outcome=ClickOutcome.BUFFERED).inc()

    async def _record_click(self, code: str, meta: RequestMeta, link_id: int | None = None) -> None:
        client = self._parse_client(meta.user_agent)
        try:
            recorded = await self._store.record_click(
                code,
                client,
                ip=meta.ip,
                user_agent=meta.user_agent,
                referer=meta.referer,
                link_id=link_id,
            )
        except Exception as exc:
            CLICKS_TOTAL.labels(outcome=ClickOutcome.FAILED).inc()
            logger.error(f"Click recording failed for {code}: {exc!r}")
            return

        outcome = ClickOutcome.RECORDED if recorded else ClickOutcome.SKIPPED
        CLICKS_TOTAL.labels(outcome=outcome).inc()
