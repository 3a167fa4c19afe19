"""Dependency injection: process-scoped service manager and per-request context.

The ServiceManager owns every long-lived resource (engine, session factory,
Redis client) and the components built on them. ``create_app()`` creates one
and stores it on ``app.state.services``; routes reach it through the
dependency functions below, never through module globals.

Object Graph
============
::
    ServiceManager
    ├─ settings
    ├─ engine / session_factory ──► LinkStore
    ├─ redis ─────────────────────► CacheLayer
    ├─ CodeGenerator(store.code_exists)
    ├─ RedirectResolver(cache, store)
    ├─ LinkService(store, cache, codes)
    ├─ AnalyticsAggregator(store, cache)
    ├─ TokenVerifier(cache)
    └─ ExpirySweeper(store, cache)

How to Use
===========
**Step 1: Startup (lifespan)**::
    manager = ServiceManager(settings)
    await manager.initialize()
    manager.start_background()

**Step 2: In routes**::
    async def handler(ctx: RequestContext = Depends(get_request_context)):
        ctx.logger.info("...", extra={"operation": "..."})

**Step 3: Shutdown**::
    await manager.cleanup()
"""

import logging
import time
import uuid
from dataclasses import dataclass, field

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortly.analytics import AnalyticsAggregator
from shortly.auth import TokenVerifier
from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.database import close_db, create_engine_from_settings, create_session_factory, init_db
from shortly.rate_limit import client_ip
from shortly.redis import close_redis, create_redis_client
from shortly.resolver import RedirectResolver, RequestMeta
from shortly.service import LinkService
from shortly.shortcode import CodeGenerator
from shortly.store import LinkStore
from shortly.sweeper import ExpirySweeper

__all__ = [
    "ServiceManager",
    "RequestContext",
    "get_service_manager",
    "get_request_context",
    "get_resolver",
    "get_link_service",
    "get_analytics",
    "get_token_verifier",
]


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Process-scoped owner of shared resources.

    Args:
        settings: Application settings.
        redis_client: Pre-built Redis client (tests inject fakeredis). When
            omitted the client is built from settings and closed on cleanup.
        engine: Pre-built async engine, likewise optional.
    """

    def __init__(
        self,
        settings: Settings,
        redis_client: redis.Redis | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.settings = settings
        self._injected_redis = redis_client
        self._injected_engine = engine
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Build resources and components once."""
        if self._initialized:
            return
        self.logger = self._setup_logger()

        self.engine = self._injected_engine or create_engine_from_settings(self.settings)
        self.session_factory = create_session_factory(self.engine)
        await init_db(self.engine)

        if self._injected_redis is not None:
            self.redis = self._injected_redis
        else:
            self.redis = create_redis_client(self.settings)

        self.cache = CacheLayer(self.redis, self.settings)
        self.store = LinkStore(self.session_factory)
        self.codes = CodeGenerator(
            self.store.code_exists,
            length=self.settings.SHORT_CODE_LENGTH,
            max_attempts=self.settings.SHORT_CODE_MAX_ATTEMPTS,
        )
        self.resolver = RedirectResolver(self.cache, self.store, self.settings)
        self.links = LinkService(self.store, self.cache, self.codes, self.settings)
        self.analytics = AnalyticsAggregator(self.store, self.cache)
        self.tokens = TokenVerifier(self.settings, self.cache)
        self.sweeper = ExpirySweeper(self.store, self.cache, self.settings)

        self._initialized = True
        self.logger.info(
            f"Services initialized (redis={'enabled' if self.cache.enabled else 'disabled'})"
        )

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("shortly")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    def start_background(self) -> None:
        self.sweeper.start()

    async def cleanup(self) -> None:
        """Stop background work and release what this manager created."""
        if not self._initialized:
            return
        await self.sweeper.stop()
        await self.resolver.drain()
        if self._injected_redis is None:
            await close_redis(self.redis)
        if self._injected_engine is None:
            await close_db(self.engine)
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data plus access to shared services.

    Attributes:
        service_manager: Process-scoped service manager
        request_id: Unique identifier for this request (X-Request-ID)
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP (first X-Forwarded-For hop, X-Real-IP, peer)
        referer: Referer header, recorded with clicks
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: str | None = None
    user_agent: str | None = None
    client_ip: str | None = None
    referer: str | None = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def cache(self) -> CacheLayer:
        return self.service_manager.cache

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context attached."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def request_meta(self) -> RequestMeta:
        return RequestMeta(ip=self.client_ip, user_agent=self.user_agent, referer=self.referer)

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager = request.app.state.services
    if not manager.initialized:
        await manager.initialize()
    return manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    return RequestContext(
        service_manager=manager,
        request_id=request_id,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=client_ip(request),
        referer=request.headers.get("referer"),
    )


def get_resolver(manager: ServiceManager = Depends(get_service_manager)) -> RedirectResolver:
    return manager.resolver


def get_link_service(manager: ServiceManager = Depends(get_service_manager)) -> LinkService:
    return manager.links


def get_analytics(manager: ServiceManager = Depends(get_service_manager)) -> AnalyticsAggregator:
    return manager.analytics


def get_token_verifier(manager: ServiceManager = Depends(get_service_manager)) -> TokenVerifier:
    return manager.tokens
