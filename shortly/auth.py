"""Bearer token verification and revocation.

Owners are identified only by the ``sub`` claim of an HS256 JWT signed with
``JWT_SECRET``; there is no user table. Tokens are minted by whatever issues
accounts (``issue_token`` exists for that and for tests).

Flow Diagram: get_current_principal()
======================================
::
    ┌───────────────────┐  missing  ┌───────────────────────────────┐
    │ Authorization:    ├──────────►│ 401 No token provided         │
    │ Bearer <token>    │           └───────────────────────────────┘
    └─────────┬─────────┘
              ▼
    ┌───────────────────┐  bad/exp  ┌───────────────────────────────┐
    │ jwt.decode()      ├──────────►│ 401 Invalid / expired token   │
    └─────────┬─────────┘           └───────────────────────────────┘
              ▼
    ┌───────────────────┐  listed   ┌───────────────────────────────┐
    │ blacklist lookup  ├──────────►│ 401 Token revoked             │
    │ (fails open)      │           └───────────────────────────────┘
    └─────────┬─────────┘
              ▼
    ┌───────────────────┐
    │ Principal         │
    └───────────────────┘
"""

import logging
import time
from dataclasses import dataclass

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.exceptions import AuthenticationError

__all__ = ["Principal", "TokenVerifier", "issue_token", "bearer_scheme", "get_current_principal"]

logger = logging.getLogger("shortly.auth")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    owner_id: str
    token: str
    expires_at: int | None = None  # epoch seconds


def issue_token(settings: Settings, owner_id: str, expires_in: int | None = None) -> str:
    now = int(time.time())
    payload = {
        "sub": owner_id,
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else settings.JWT_EXPIRES_SECONDS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class TokenVerifier:
    def __init__(self, settings: Settings, cache: CacheLayer) -> None:
        self._settings = settings
        self._cache = cache

    async def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(
                token,
                self._settings.JWT_SECRET,
                algorithms=[self._settings.JWT_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Unauthorized: Token expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.debug(f"Rejected bearer token: {exc}")
            raise AuthenticationError("Unauthorized: Invalid token") from exc

        if await self._cache.is_blacklisted(token):
            raise AuthenticationError("Unauthorized: Token revoked")

        return Principal(owner_id=str(payload["sub"]), token=token, expires_at=payload.get("exp"))

    async def revoke(self, principal: Principal) -> bool:
        """Blacklist the token for the rest of its lifetime.

        Returns False when Redis is unavailable; the token then stays valid
        until it expires.
        """
        ttl = None
        if principal.expires_at is not None:
            ttl = max(principal.expires_at - int(time.time()), 1)
        revoked = await self._cache.blacklist_token(principal.token, ttl)
        if not revoked:
            logger.warning(f"Could not revoke token for owner {principal.owner_id}")
        return revoked


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized: No token provided")
    verifier: TokenVerifier = request.app.state.services.tokens
    return await verifier.verify(credentials.credentials)
