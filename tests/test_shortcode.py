"""Short code generation and slug validation tests."""

from unittest.mock import AsyncMock, patch

import pytest

from shortly.exceptions import GenerationExhaustedError
from shortly.shortcode import ALPHABET, CodeGenerator, generate_short_code, is_reserved, validate_slug


def test_generated_code_shape() -> None:
    for _ in range(200):
        code = generate_short_code()
        assert len(code) == 7
        assert set(code) <= set(ALPHABET)


def test_alphabet_is_62_alphanumerics() -> None:
    assert len(ALPHABET) == 62
    assert ALPHABET.isalnum()


@pytest.mark.parametrize("slug", ["abc", "my-link", "A1-b2-C3", "x" * 50, "2024"])
def test_valid_slugs(slug: str) -> None:
    assert validate_slug(slug)


@pytest.mark.parametrize(
    "slug",
    ["ab", "x" * 51, "-abc", "abc-", "a--b", "has space", "under_score", "dot.ted", "émoji", "abc\n", "\nabc", "ab\tc"],
)
def test_invalid_slugs(slug: str) -> None:
    assert not validate_slug(slug)


@pytest.mark.parametrize("slug", ["api", "API", "Admin", "health", "docs", "metrics", "static"])
def test_reserved_slugs_case_insensitive(slug: str) -> None:
    assert is_reserved(slug)


def test_ordinary_slug_not_reserved() -> None:
    assert not is_reserved("my-link")
    assert not is_reserved("apis")


@pytest.mark.asyncio
async def test_generate_returns_first_free_candidate() -> None:
    is_taken = AsyncMock(side_effect=[True, True, False])
    generator = CodeGenerator(is_taken, length=7, max_attempts=10)

    code = await generator.generate()

    assert len(code) == 7
    assert is_taken.await_count == 3


@pytest.mark.asyncio
async def test_generate_exhausts_after_max_attempts() -> None:
    is_taken = AsyncMock(return_value=True)
    generator = CodeGenerator(is_taken, max_attempts=10)

    with pytest.raises(GenerationExhaustedError):
        await generator.generate()
    assert is_taken.await_count == 10


@pytest.mark.asyncio
async def test_generate_never_returns_reserved_word() -> None:
    is_taken = AsyncMock(return_value=False)
    generator = CodeGenerator(is_taken, length=3, max_attempts=2)

    with patch("shortly.shortcode.generate_short_code", side_effect=["api", "xyz"]):
        code = await generator.generate()

    assert code == "xyz"
    is_taken.assert_awaited_once_with("xyz")


@pytest.mark.asyncio
async def test_is_available_inverts_store_lookup() -> None:
    generator = CodeGenerator(AsyncMock(return_value=True))
    assert not await generator.is_available("taken")
