"""Shared enums for the shortly link service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "CacheStatus", "RequestStatus", "ClickOutcome", "RateLimitBucket"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


class CacheStatus(StrEnum):
    """Outcome of a cache lookup. Only HIT short-circuits the store."""

    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


class RequestStatus(StrEnum):
    """Outcome labels for request metrics."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ERROR = "error"


class ClickOutcome(StrEnum):
    """Outcome labels for click recording metrics."""

    RECORDED = "recorded"
    BUFFERED = "buffered"
    SKIPPED = "skipped"
    FAILED = "failed"


class RateLimitBucket(StrEnum):
    """Independent rate-limit windows, each with its own threshold."""

    GENERAL = "general"
    CREATE = "create"
    AUTH = "auth"
