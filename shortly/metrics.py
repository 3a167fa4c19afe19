"""Prometheus collectors shared by the shortly components."""

from prometheus_client import Counter, Histogram

__all__ = [
    "REDIRECTS_TOTAL",
    "RESOLVE_DURATION",
    "CLICKS_TOTAL",
    "CACHE_ERRORS_TOTAL",
    "LINKS_CREATED_TOTAL",
    "LINK_CREATION_DURATION",
    "RATE_LIMIT_REJECTIONS_TOTAL",
    "EXPIRED_LINKS_SWEPT_TOTAL",
]

REDIRECTS_TOTAL = Counter(
    "shortly_redirects_total",
    "Short code resolutions by cache outcome",
    ["cache_status", "found"],
)
RESOLVE_DURATION = Histogram(
    "shortly_resolve_duration_seconds",
    "Time taken to resolve a short code",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
CLICKS_TOTAL = Counter(
    "shortly_clicks_total",
    "Click recordings by outcome",
    ["outcome"],
)
CACHE_ERRORS_TOTAL = Counter(
    "shortly_cache_errors_total",
    "Redis transport failures absorbed by the cache layer",
    ["operation"],
)
LINKS_CREATED_TOTAL = Counter(
    "shortly_links_created_total",
    "Link creation requests by outcome",
    ["status"],
)
RATE_LIMIT_REJECTIONS_TOTAL = Counter(
    "shortly_rate_limit_rejections_total",
    "Requests rejected by the sliding-window rate limiter",
    ["bucket"],
)
EXPIRED_LINKS_SWEPT_TOTAL = Counter(
    "shortly_expired_links_swept_total",
    "Links removed by the passive expiry sweep",
)
LINK_CREATION_DURATION = Histogram(
    "shortly_link_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
