"""Link lifecycle orchestration: create, list, delete and owner purge.

The HTTP routes are thin; every rule about what may be created lives here.

Flow Diagram: create_link()
============================
::
    ┌──────────────────┐
    │ POST /api/urls   │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐  no   ┌────────────────────────┐
    │ http(s)://?      ├──────►│ ValidationError (400)  │
    └────────┬─────────┘       └────────────────────────┘
             ▼
    ┌──────────────────┐  yes  ┌────────────────────────┐
    │ custom slug?     ├──────►│ reserved → format →    │──► ValidationError
    └────────┬─────────┘       │ availability           │
             │ no              └───────────┬────────────┘
             ▼                             │
    ┌──────────────────┐                   │
    │ CodeGenerator.   │                   │
    │ generate()       │                   │
    └────────┬─────────┘                   │
             └──────────────┬──────────────┘
                            ▼
                   ┌──────────────────┐
                   │ store.create()   │──► ConflictError (409, lost race)
                   └────────┬─────────┘
                            ▼
                   ┌──────────────────┐
                   │ cache_url()      │  (best effort)
                   └────────┬─────────┘
                            ▼
                   ┌──────────────────┐
                   │ ShortLink        │
                   └──────────────────┘

Key Behaviours
===============
- Slug checks run in a fixed order: reserved, then format, then
  availability, so the error message names the first rule broken.
- The availability check is advisory; two concurrent creators of the same
  slug are separated by the store's unique constraint.
- Every link gets an expiry (default URL_EXPIRY_DAYS) and is cached with
  its remaining lifetime right after creation.
- Deleting a link drops its cache entry and buffered clicks so it stops
  resolving immediately.
"""

import datetime
import logging
import math
import time
from collections.abc import Sequence

from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.enums import RequestStatus
from shortly.exceptions import ConflictError, ShortenerError, SlugUnavailableError, ValidationError
from shortly.metrics import LINK_CREATION_DURATION, LINKS_CREATED_TOTAL
from shortly.models import ShortLink, utcnow
from shortly.schemas import Pagination, has_safe_protocol
from shortly.shortcode import CodeGenerator, is_reserved, validate_slug
from shortly.store import LinkStore

__all__ = ["LinkService", "MAX_PAGE_SIZE"]

logger = logging.getLogger("shortly.service")

MAX_PAGE_SIZE = 100


def _creation_status(exc: ShortenerError) -> RequestStatus:
    if isinstance(exc, ConflictError):
        return RequestStatus.CONFLICT
    if isinstance(exc, ValidationError):
        return RequestStatus.VALIDATION_ERROR
    return RequestStatus.ERROR


class LinkService:
    def __init__(
        self,
        store: LinkStore,
        cache: CacheLayer,
        codes: CodeGenerator,
        settings: Settings,
    ) -> None:
        self._store = store
        self._cache = cache
        self._codes = codes
        self._settings = settings

    async def create_link(
        self,
        owner_id: str,
        url: str,
        custom_slug: str | None = None,
        expiry_days: int | None = None,
    ) -> ShortLink:
        """Create a short link owned by ``owner_id``.

        Args:
            owner_id: Account identifier (token subject).
            url: Destination, must use http:// or https://.
            custom_slug: Optional vanity code; stored as the short code.
            expiry_days: Lifetime in days, defaults to URL_EXPIRY_DAYS.

        Returns:
            ShortLink: The persisted record.

        Raises:
            ValidationError: Bad protocol, reserved or malformed slug.
            SlugUnavailableError: The custom slug is taken (400).
            ConflictError: Lost a concurrent race for the same code (409).
            GenerationExhaustedError: No free random code was found.
            UpstreamUnavailableError: The store is unreachable.
        """
        start_time = time.perf_counter()
        try:
            code = await self._claim_code(url, custom_slug)
            days = expiry_days or self._settings.URL_EXPIRY_DAYS
            expires_at = utcnow() + datetime.timedelta(days=days)
            link = await self._store.create(
                short_code=code,
                original_url=url,
                owner_id=owner_id,
                custom_slug=custom_slug,
                expires_at=expires_at,
            )
            await self._cache.cache_url(code, url, int((expires_at - utcnow()).total_seconds()))
        except ShortenerError as exc:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)
            LINKS_CREATED_TOTAL.labels(status=_creation_status(exc)).inc()
            logger.warning(f"Link creation failed for owner {owner_id}: {exc.message}")
            raise

        duration = time.perf_counter() - start_time
        LINK_CREATION_DURATION.observe(duration)
        LINKS_CREATED_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        logger.info(f"Link created: {code} in {duration:.3f}s")
        return link

    async def _claim_code(self, url: str, custom_slug: str | None) -> str:
        if not has_safe_protocol(url):
            raise ValidationError("Invalid URL: Only http:// and https:// protocols are allowed")
        if not custom_slug:
            return await self._codes.generate()
        if is_reserved(custom_slug):
            raise ValidationError("This slug is reserved and cannot be used")
        if not validate_slug(custom_slug):
            raise ValidationError(
                "Invalid custom slug format. Use 3-50 alphanumeric characters and single hyphens."
            )
        if not await self._codes.is_available(custom_slug):
            raise SlugUnavailableError("Custom slug is already in use")
        return custom_slug

    async def list_links(
        self, owner_id: str, page: int = 1, limit: int = 10
    ) -> tuple[Sequence[ShortLink], Pagination]:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        links, total = await self._store.list_for_owner(owner_id, page, limit)
        pagination = Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        )
        return links, pagination

    async def delete_link(self, code: str, owner_id: str) -> bool:
        if not await self._store.delete(code, owner_id):
            return False
        await self._forget(code)
        logger.info(f"Link deleted: {code}")
        return True

    async def purge_owner(self, owner_id: str) -> int:
        """Delete every link of an account (account removal cascade)."""
        codes = await self._store.purge_owner(owner_id)
        for code in codes:
            await self._forget(code)
        logger.info(f"Purged {len(codes)} links for owner {owner_id}")
        return len(codes)

    async def _forget(self, code: str) -> None:
        await self._cache.invalidate(code)
        await self._cache.flush_click_buffer(code)
