"""Response header middleware: request IDs and browser security headers."""

import uuid
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

__all__ = ["SecurityHeadersMiddleware"]

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=(), payment=()",
}
HSTS_VALUE = "max-age=31536000; includeSubDomains; preload"

# Interactive docs load assets from a CDN and render in frames.
DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID and harden every response.

    An incoming X-Request-ID is kept so IDs can be correlated across
    proxies; otherwise a UUID4 is generated. The ID is stored on
    ``request.state.request_id`` for the request context.
    """

    def __init__(self, app, production: bool = False) -> None:
        super().__init__(app)
        self.production = production

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        if not request.url.path.startswith(DOCS_PATHS):
            response.headers.update(SECURITY_HEADERS)
            if self.production:
                response.headers["Strict-Transport-Security"] = HSTS_VALUE
        return response
