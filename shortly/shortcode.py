"""Short code generation and custom slug validation.

Random codes are 7 characters drawn from the 62-symbol alphanumeric alphabet
with nanoid. Random codes and custom slugs share one namespace, so every
candidate is checked against the store before it is handed out; the unique
constraint in the store remains the final arbiter.
"""

import logging
import re
from collections.abc import Awaitable, Callable

from nanoid import generate

from shortly.exceptions import GenerationExhaustedError

__all__ = [
    "ALPHABET",
    "RESERVED_SLUGS",
    "CodeGenerator",
    "generate_short_code",
    "is_reserved",
    "validate_slug",
]

logger = logging.getLogger("shortly.shortcode")

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
DEFAULT_CODE_LENGTH = 7
DEFAULT_MAX_ATTEMPTS = 10

SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 50
_SLUG_PATTERN = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?")

# System paths that must never be claimable as short codes.
RESERVED_SLUGS = frozenset(
    {
        "api",
        "admin",
        "dashboard",
        "login",
        "register",
        "logout",
        "health",
        "swagger",
        "docs",
        "redoc",
        "metrics",
        "static",
        "assets",
    }
)


def generate_short_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


def validate_slug(slug: str) -> bool:
    if not SLUG_MIN_LENGTH <= len(slug) <= SLUG_MAX_LENGTH:
        return False
    if "--" in slug:
        return False
    return _SLUG_PATTERN.fullmatch(slug) is not None


def is_reserved(slug: str) -> bool:
    return slug.lower() in RESERVED_SLUGS


class CodeGenerator:
    """Hands out short codes that are free in the shared code/slug namespace.

    Args:
        is_taken: Coroutine returning True when a value already exists as a
            short code or custom slug (``LinkStore.code_exists``).
        length: Length of generated codes.
        max_attempts: Number of candidates tried before giving up.
    """

    def __init__(
        self,
        is_taken: Callable[[str], Awaitable[bool]],
        length: int = DEFAULT_CODE_LENGTH,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._is_taken = is_taken
        self._length = length
        self._max_attempts = max_attempts

    async def is_available(self, slug: str) -> bool:
        return not await self._is_taken(slug)

    async def generate(self) -> str:
        """Return a random code not yet used by any record.

        Raises:
            GenerationExhaustedError: every attempt collided.
        """
        for attempt in range(1, self._max_attempts + 1):
            candidate = generate_short_code(self._length)
            if is_reserved(candidate):
                continue
            if await self.is_available(candidate):
                return candidate
            logger.debug(f"Short code collision on attempt {attempt}: {candidate}")

        logger.error(f"Failed to generate a unique short code after {self._max_attempts} attempts")
        raise GenerationExhaustedError(
            "Failed to generate unique short code after maximum attempts; please retry"
        )
