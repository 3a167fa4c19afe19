"""Per-client-IP sliding-window throttling as FastAPI dependencies.

Each bucket (general, create, auth) keeps its own Redis window keyed by
``{bucket}:{client_ip}``. Admitted responses carry the X-RateLimit-*
headers; rejected requests get a 429 with the same headers. When Redis is
down every request is admitted.
"""

import logging

from fastapi import Request, Response

from shortly.cache import RateLimitResult
from shortly.config import Settings
from shortly.enums import RateLimitBucket
from shortly.exceptions import RateLimitExceededError
from shortly.metrics import RATE_LIMIT_REJECTIONS_TOTAL

__all__ = [
    "RateLimiter",
    "client_ip",
    "general_rate_limit",
    "create_rate_limit",
    "auth_rate_limit",
]

logger = logging.getLogger("shortly.rate_limit")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def rate_limit_headers(limit: int, result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_time // 1000),
    }


class RateLimiter:
    """Dependency enforcing one bucket's limit for the calling client."""

    def __init__(self, bucket: RateLimitBucket) -> None:
        self.bucket = bucket

    def limits(self, settings: Settings) -> tuple[int, int]:
        if self.bucket is RateLimitBucket.CREATE:
            return settings.CREATE_RATE_LIMIT_MAX_REQUESTS, settings.CREATE_RATE_LIMIT_WINDOW_MS
        if self.bucket is RateLimitBucket.AUTH:
            return settings.AUTH_RATE_LIMIT_MAX_REQUESTS, settings.AUTH_RATE_LIMIT_WINDOW_MS
        return settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_MS

    async def __call__(self, request: Request, response: Response) -> RateLimitResult:
        services = request.app.state.services
        max_requests, window_ms = self.limits(services.settings)
        ip = client_ip(request)
        result = await services.cache.check_rate_limit(f"{self.bucket}:{ip}", max_requests, window_ms)
        headers = rate_limit_headers(max_requests, result)

        if not result.allowed:
            RATE_LIMIT_REJECTIONS_TOTAL.labels(bucket=self.bucket).inc()
            logger.warning(f"Rate limit exceeded: bucket={self.bucket} ip={ip}")
            raise RateLimitExceededError("Too many requests, please try again later", headers=headers)

        response.headers.update(headers)
        return result


general_rate_limit = RateLimiter(RateLimitBucket.GENERAL)
create_rate_limit = RateLimiter(RateLimitBucket.CREATE)
auth_rate_limit = RateLimiter(RateLimitBucket.AUTH)
