"""Bearer token verification and revocation tests."""

import jwt
import pytest
from fakeredis import FakeServer
from pydantic import ValidationError as SettingsValidationError

from shortly.auth import TokenVerifier, issue_token
from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.exceptions import AuthenticationError


@pytest.fixture
def verifier(settings: Settings, cache: CacheLayer) -> TokenVerifier:
    return TokenVerifier(settings, cache)


@pytest.mark.asyncio
async def test_valid_token(verifier: TokenVerifier, settings: Settings) -> None:
    principal = await verifier.verify(issue_token(settings, "owner-1"))
    assert principal.owner_id == "owner-1"
    assert principal.expires_at is not None


@pytest.mark.asyncio
async def test_expired_token(verifier: TokenVerifier, settings: Settings) -> None:
    token = issue_token(settings, "owner-1", expires_in=-10)
    with pytest.raises(AuthenticationError, match="expired"):
        await verifier.verify(token)


@pytest.mark.asyncio
async def test_wrong_secret(verifier: TokenVerifier) -> None:
    token = jwt.encode({"sub": "owner-1", "exp": 9_999_999_999}, "another-secret", algorithm="HS256")
    with pytest.raises(AuthenticationError, match="Invalid token"):
        await verifier.verify(token)


@pytest.mark.asyncio
async def test_token_without_subject(verifier: TokenVerifier, settings: Settings) -> None:
    token = jwt.encode({"exp": 9_999_999_999}, settings.JWT_SECRET, algorithm="HS256")
    with pytest.raises(AuthenticationError):
        await verifier.verify(token)


@pytest.mark.asyncio
async def test_garbage_token(verifier: TokenVerifier) -> None:
    with pytest.raises(AuthenticationError):
        await verifier.verify("not-a-jwt")


@pytest.mark.asyncio
async def test_revoked_token_rejected(verifier: TokenVerifier, settings: Settings) -> None:
    token = issue_token(settings, "owner-1")
    principal = await verifier.verify(token)

    assert await verifier.revoke(principal)

    with pytest.raises(AuthenticationError, match="revoked"):
        await verifier.verify(token)
    # Other tokens of the same owner stay valid.
    other = issue_token(settings, "owner-1", expires_in=120)
    assert (await verifier.verify(other)).owner_id == "owner-1"


@pytest.mark.asyncio
async def test_blacklist_check_fails_open(
    verifier: TokenVerifier, settings: Settings, redis_server: FakeServer
) -> None:
    token = issue_token(settings, "owner-1")
    redis_server.connected = False

    assert (await verifier.verify(token)).owner_id == "owner-1"


def test_missing_jwt_secret_is_fatal(monkeypatch) -> None:
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(SettingsValidationError):
        Settings(_env_file=None)


def test_blank_jwt_secret_is_fatal() -> None:
    with pytest.raises(SettingsValidationError):
        Settings(_env_file=None, JWT_SECRET="   ")
