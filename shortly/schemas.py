"""Pydantic schemas for request/response validation in the shortly link service.

This module defines Pydantic models for API input validation and output serialization,
ensuring type safety and automatic OpenAPI documentation generation. JSON field
names are camelCase on the wire and snake_case in Python.

Schema Hierarchy
=================
::
    CreateLinkRequest (Input)
    ├─ url: str (http/https, validated URL)
    ├─ customSlug: str | None
    └─ expiryDays: int | None (1..365)

    CreateLinkResponse (Output)
    └─ data: LinkCreated
       ├─ shortCode / shortUrl / originalUrl
       └─ expiresAt / createdAt

    ListLinksResponse (Output)
    └─ data: LinkPage
       ├─ urls: list[LinkSummary]
       └─ pagination: Pagination

    AnalyticsResponse (Output)
    └─ data: AnalyticsSummary
       ├─ url: AnalyticsLink
       └─ analytics: AnalyticsBreakdown

    RedirectInfoResponse / MessageResponse / ErrorResponse / HealthResponse

    BufferedClick (Redis click buffer payload)

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance, after a
  case-insensitive http:// / https:// protocol check.
- Slug rules (length, charset, reserved words, availability) are enforced by
  the link service so they surface in a fixed order.
- All datetime fields are timezone-aware.
"""

import datetime

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shortly.enums import HealthStatus

__all__ = [
    "ALLOWED_SCHEMES",
    "has_safe_protocol",
    "CreateLinkRequest",
    "LinkCreated",
    "CreateLinkResponse",
    "LinkSummary",
    "Pagination",
    "LinkPage",
    "ListLinksResponse",
    "RedirectInfoResponse",
    "BucketCount",
    "AnalyticsLink",
    "AnalyticsBreakdown",
    "AnalyticsSummary",
    "AnalyticsResponse",
    "MessageResponse",
    "ErrorResponse",
    "HealthResponse",
    "BufferedClick",
]

ALLOWED_SCHEMES = ("http://", "https://")


def has_safe_protocol(url: str) -> bool:
    return url.strip().lower().startswith(ALLOWED_SCHEMES)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CreateLinkRequest(CamelModel):
    url: str
    custom_slug: str | None = None
    expiry_days: int | None = Field(None, ge=1, le=365)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not has_safe_protocol(v):
            raise ValueError("Invalid URL: Only http:// and https:// protocols are allowed")
        if not validators.url(v):
            raise ValueError("Invalid URL provided")
        return v

    @field_validator("custom_slug")
    @classmethod
    def blank_slug_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class LinkCreated(CamelModel):
    short_code: str
    short_url: str
    original_url: str
    expires_at: datetime.datetime | None
    created_at: datetime.datetime


class CreateLinkResponse(CamelModel):
    success: bool = True
    data: LinkCreated


class LinkSummary(CamelModel):
    short_code: str
    short_url: str
    original_url: str
    click_count: int
    is_active: bool
    created_at: datetime.datetime
    expires_at: datetime.datetime | None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class LinkPage(CamelModel):
    urls: list[LinkSummary]
    pagination: Pagination


class ListLinksResponse(CamelModel):
    success: bool = True
    data: LinkPage


class RedirectInfoResponse(CamelModel):
    success: bool = True
    original_url: str


class BucketCount(CamelModel):
    key: str
    count: int


class AnalyticsLink(CamelModel):
    short_code: str
    original_url: str
    click_count: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None
    is_active: bool


class AnalyticsBreakdown(CamelModel):
    total_clicks: int
    buffered_clicks: int = 0
    clicks_by_day: list[BucketCount]
    clicks_by_country: list[BucketCount]
    clicks_by_device: list[BucketCount]
    clicks_by_browser: list[BucketCount]


class AnalyticsSummary(CamelModel):
    url: AnalyticsLink
    analytics: AnalyticsBreakdown


class AnalyticsResponse(CamelModel):
    success: bool = True
    data: AnalyticsSummary


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class ErrorResponse(CamelModel):
    success: bool = False
    error: str


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class BufferedClick(BaseModel):
    """Redis click buffer payload, one per redirect served from cache."""

    timestamp: int = Field(..., description="Epoch milliseconds of the redirect")
    ip: str | None = None
    user_agent: str | None = None
    referer: str | None = None
