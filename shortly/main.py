"""FastAPI application factory for the shortly link service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────────┐
    │ uvicorn --factory│
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ create_app()     │  settings, ServiceManager,
    │                  │  middleware, handlers, routes
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ lifespan startup │  engine + tables, Redis client,
    │                  │  components, expiry sweeper
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ Serve requests   │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ lifespan shutdown│  stop sweeper, drain click
    │                  │  writes, close Redis + engine
    └──────────────────┘

How to Use
===========
**Step 1: Run with uvicorn**::
    JWT_SECRET=change-me uvicorn shortly.main:create_app --factory --host 0.0.0.0 --port 8000

**Step 2: Access interactive docs**::
    http://localhost:8000/docs

**Step 3: Make API calls**::
    curl -X POST http://localhost:8000/api/urls \
         -H "Authorization: Bearer $TOKEN" \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com"}'

Key Behaviours
===============
- There is no module-level app; importing this module needs no settings.
- A missing JWT_SECRET fails create_app() in every environment.
- Errors render as ``{"success": false, "error": "..."}``; request body
  validation failures are 400, not 422.
- Prometheus metrics are exposed at /metrics unless METRICS_ENABLED is off.
"""

__all__ = ["create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortly.config import Settings, get_settings
from shortly.dependencies import ServiceManager
from shortly.exceptions import RateLimitExceededError, ShortenerError
from shortly.middleware import SecurityHeadersMiddleware
from shortly.routes import router
from shortly.schemas import ErrorResponse

PYDANTIC_VALUE_ERROR_PREFIX = "Value error, "


def _error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers=headers,
    )


async def shortener_error_handler(request: Request, exc: ShortenerError) -> JSONResponse:
    headers = exc.headers if isinstance(exc, RateLimitExceededError) else None
    return _error_response(exc.status_code, exc.message, headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = str(errors[0].get("msg", "Invalid request")) if errors else "Invalid request"
    return _error_response(400, message.removeprefix(PYDANTIC_VALUE_ERROR_PREFIX))


def create_app(settings: Settings | None = None, manager: ServiceManager | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use; defaults to ``get_settings()``.
        manager: Pre-built ServiceManager (tests inject one with fakeredis
            and SQLite); defaults to one built from ``settings``.
    """
    settings = settings or (manager.settings if manager else get_settings())
    manager = manager or ServiceManager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        await manager.initialize()
        manager.start_background()
        yield
        # Shutdown
        await manager.cleanup()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Short-link redirect service with click analytics",
        lifespan=lifespan,
    )
    app.state.services = manager

    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ShortenerError, shortener_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    if settings.METRICS_ENABLED:
        Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=False,
            should_respect_env_var=False,
        ).instrument(app).expose(app)

    app.include_router(router)
    return app
