"""HTTP routes for the shortly link service.

The routes are thin: they parse input, call one component and shape the
response. Errors are raised as ShortenerError subclasses and rendered by
the handler registered in ``shortly.main``.

How to Use
===========
**Step 1: Include router**::
    app.include_router(router)

**Step 2: Access endpoints**::
    # Health check
    GET http://localhost:8000/health

    # Shorten URL (bearer token required)
    POST http://localhost:8000/api/urls
    {"url": "https://example.com", "customSlug": "my-link", "expiryDays": 7}

    # Redirect
    GET http://localhost:8000/my-link

Key Behaviours
===============
- Every route is behind the general per-IP rate limit; link creation and
  logout add their own stricter buckets.
- Owner-scoped routes answer 404 for links owned by someone else, so
  existence of other accounts' codes is not disclosed.
- Redirects are 302 so every visit comes back through the resolver and is
  counted.
- The catch-all ``/{short_code}`` route is registered last.

Endpoints:
    /health:  Health check for monitoring.
    /api/auth/logout:  Revoke the presented bearer token.
    /api/urls:  Create (POST) and list (GET) the caller's links.
    /api/urls/:code/redirect-info:  Resolve without redirecting.
    /api/urls/:code/analytics:  Click analytics for an owned link.
    /api/urls/:code:  Delete an owned link.
    /:code:  Redirect to the original URL.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from shortly.analytics import AnalyticsAggregator
from shortly.auth import Principal, TokenVerifier, get_current_principal
from shortly.database import get_db
from shortly.dependencies import (
    RequestContext,
    get_analytics,
    get_link_service,
    get_request_context,
    get_resolver,
    get_token_verifier,
)
from shortly.enums import HealthStatus
from shortly.exceptions import NotFoundError
from shortly.models import ShortLink, as_utc
from shortly.rate_limit import auth_rate_limit, create_rate_limit, general_rate_limit
from shortly.resolver import RedirectResolver
from shortly.schemas import (
    AnalyticsResponse,
    CreateLinkRequest,
    CreateLinkResponse,
    HealthResponse,
    LinkCreated,
    LinkPage,
    LinkSummary,
    ListLinksResponse,
    MessageResponse,
    RedirectInfoResponse,
)
from shortly.service import LinkService

__all__ = ["router"]

router = APIRouter(dependencies=[Depends(general_rate_limit)])

NOT_FOUND_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Link not found</title></head>
<body>
<h1>404 - Link not found</h1>
<p>This short link does not exist or has expired.</p>
</body>
</html>
"""


def _short_url(ctx: RequestContext, code: str) -> str:
    return f"{ctx.settings.BASE_URL.rstrip('/')}/{code}"


def _summary(ctx: RequestContext, link: ShortLink) -> LinkSummary:
    return LinkSummary(
        short_code=link.short_code,
        short_url=_short_url(ctx, link.short_code),
        original_url=link.original_url,
        click_count=link.click_count,
        is_active=link.is_active,
        created_at=as_utc(link.created_at),
        expires_at=as_utc(link.expires_at),
    )


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    if not ctx.cache.enabled:
        cache_status = HealthStatus.DISABLED
    elif await ctx.cache.ping():
        cache_status = HealthStatus.HEALTHY
    else:
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is not HealthStatus.UNHEALTHY
        else HealthStatus.UNHEALTHY
    )
    ctx.logger.debug(f"Health check completed: {status.value}")
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post(
    "/api/auth/logout",
    response_model=MessageResponse,
    tags=["auth"],
    dependencies=[Depends(auth_rate_limit)],
)
async def logout(
    ctx: RequestContext = Depends(get_request_context),
    principal: Principal = Depends(get_current_principal),
    tokens: TokenVerifier = Depends(get_token_verifier),
) -> MessageResponse:
    await tokens.revoke(principal)
    ctx.logger.info(
        f"Token revoked for owner {principal.owner_id}",
        extra={"operation": "logout", "owner_id": principal.owner_id},
    )
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/api/urls",
    response_model=CreateLinkResponse,
    status_code=201,
    tags=["urls"],
    dependencies=[Depends(create_rate_limit)],
)
async def create_url(
    payload: CreateLinkRequest,
    ctx: RequestContext = Depends(get_request_context),
    principal: Principal = Depends(get_current_principal),
    service: LinkService = Depends(get_link_service),
) -> CreateLinkResponse:
    ctx.add_tag("url_creation")
    link = await service.create_link(
        principal.owner_id,
        payload.url,
        custom_slug=payload.custom_slug,
        expiry_days=payload.expiry_days,
    )
    ctx.logger.info(
        f"Short link created: {link.short_code}",
        extra={
            "operation": "create_link",
            "short_code": link.short_code,
            "duration_ms": ctx.get_duration(),
        },
    )
    return CreateLinkResponse(
        data=LinkCreated(
            short_code=link.short_code,
            short_url=_short_url(ctx, link.short_code),
            original_url=link.original_url,
            expires_at=as_utc(link.expires_at),
            created_at=as_utc(link.created_at),
        )
    )


@router.get("/api/urls", response_model=ListLinksResponse, tags=["urls"])
async def list_urls(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    ctx: RequestContext = Depends(get_request_context),
    principal: Principal = Depends(get_current_principal),
    service: LinkService = Depends(get_link_service),
) -> ListLinksResponse:
    links, pagination = await service.list_links(principal.owner_id, page, limit)
    return ListLinksResponse(
        data=LinkPage(urls=[_summary(ctx, link) for link in links], pagination=pagination)
    )


@router.get(
    "/api/urls/{short_code}/redirect-info",
    response_model=RedirectInfoResponse,
    tags=["redirect"],
)
async def redirect_info(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    resolver: RedirectResolver = Depends(get_resolver),
) -> RedirectInfoResponse:
    url = await resolver.resolve(short_code, ctx.request_meta)
    if url is None:
        raise NotFoundError("Link not found or expired")
    return RedirectInfoResponse(original_url=url)


@router.get("/api/urls/{short_code}/analytics", response_model=AnalyticsResponse, tags=["urls"])
async def get_analytics_for_url(
    short_code: str,
    principal: Principal = Depends(get_current_principal),
    aggregator: AnalyticsAggregator = Depends(get_analytics),
) -> AnalyticsResponse:
    summary = await aggregator.get_analytics(short_code, principal.owner_id)
    if summary is None:
        raise NotFoundError("URL not found")
    return AnalyticsResponse(data=summary)


@router.delete("/api/urls/{short_code}", response_model=MessageResponse, tags=["urls"])
async def delete_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    principal: Principal = Depends(get_current_principal),
    service: LinkService = Depends(get_link_service),
) -> MessageResponse:
    if not await service.delete_link(short_code, principal.owner_id):
        raise NotFoundError("URL not found")
    ctx.logger.info(
        f"Short link deleted: {short_code}",
        extra={"operation": "delete_link", "short_code": short_code},
    )
    return MessageResponse(message="URL deleted successfully")


@router.get("/{short_code}", tags=["redirect"], response_model=None)
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    resolver: RedirectResolver = Depends(get_resolver),
) -> RedirectResponse | HTMLResponse:
    ctx.add_tag("redirect")
    url = await resolver.resolve(short_code, ctx.request_meta)
    if url is None:
        ctx.logger.info(
            f"Redirect failed - short code not found: {short_code}",
            extra={
                "operation": "redirect",
                "short_code": short_code,
                "duration_ms": ctx.get_duration(),
            },
        )
        return HTMLResponse(NOT_FOUND_PAGE, status_code=404)

    ctx.logger.info(
        f"Redirect: {short_code} -> {url}",
        extra={
            "operation": "redirect",
            "short_code": short_code,
            "duration_ms": ctx.get_duration(),
        },
    )
    return RedirectResponse(url=url, status_code=302)
