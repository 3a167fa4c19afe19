"""Error taxonomy for the shortly link service.

Every error carries the HTTP status it maps to; a single exception handler
in ``shortly.main`` renders them as ``{"success": false, "error": ...}``.
Cache failures never reach this module: the cache layer absorbs them.
"""

__all__ = [
    "ShortenerError",
    "ValidationError",
    "UnsafeDestinationError",
    "ConflictError",
    "SlugUnavailableError",
    "NotFoundError",
    "GenerationExhaustedError",
    "UpstreamUnavailableError",
    "AuthenticationError",
    "RateLimitExceededError",
]


class ShortenerError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ShortenerError):
    """Bad slug or URL format; user-correctable."""

    status_code = 400


class UnsafeDestinationError(ValidationError):
    """Stored destination does not use http:// or https://."""


class ConflictError(ShortenerError):
    """Short code or slug collision detected by the storage layer."""

    status_code = 409


class SlugUnavailableError(ConflictError):
    """Requested custom slug already exists; rejected before any write."""

    status_code = 400


class NotFoundError(ShortenerError):
    status_code = 404


class GenerationExhaustedError(ShortenerError):
    """No free random code found within the allowed attempts. Retryable."""

    status_code = 500


class UpstreamUnavailableError(ShortenerError):
    """Persistent store transport failure on a critical path."""

    status_code = 503


class AuthenticationError(ShortenerError):
    status_code = 401


class RateLimitExceededError(ShortenerError):
    status_code = 429

    def __init__(self, message: str, headers: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.headers = headers or {}
