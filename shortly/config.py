"""Configuration management for the shortly link service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram: get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache │
    │ (lru_cache) │
    └──────┬──────┘
    HIT?   │
    ┌──────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1: Import**::
    from shortly.config import get_settings

**Step 2: Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3: Pass explicitly**::
    app = create_app(Settings(JWT_SECRET="...", REDIS_ENABLED=False))

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- JWT_SECRET has no default: a missing or blank secret raises
  ValidationError at startup in every environment.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortly"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortly:shortly@db:5432/shortly"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_ENABLED: bool = True
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0

    # Prometheus /metrics exposition
    METRICS_ENABLED: bool = True

    # Bearer tokens
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_SECONDS: int = 7 * 24 * 3600

    # Short code generation
    SHORT_CODE_LENGTH: int = 7
    SHORT_CODE_MAX_ATTEMPTS: int = 10

    # Link lifetime and URL cache
    URL_EXPIRY_DAYS: int = 30
    URL_CACHE_TTL_SECONDS: int = 3600
    URL_CACHE_MIN_TTL_SECONDS: int = 60

    # Click buffering / token revocation
    CLICK_BUFFER_TTL_SECONDS: int = 300
    TOKEN_BLACKLIST_TTL_SECONDS: int = 7 * 24 * 3600

    # Rate limiting (sliding window, per client IP)
    RATE_LIMIT_WINDOW_MS: int = 60_000
    RATE_LIMIT_MAX_REQUESTS: int = 500
    CREATE_RATE_LIMIT_WINDOW_MS: int = 60_000
    CREATE_RATE_LIMIT_MAX_REQUESTS: int = 30
    AUTH_RATE_LIMIT_WINDOW_MS: int = 900_000
    AUTH_RATE_LIMIT_MAX_REQUESTS: int = 5

    # Passive expiry sweep
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 300
    EXPIRY_SWEEP_BATCH_SIZE: int = 500

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("JWT_SECRET must be set to a non-empty value")
        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
