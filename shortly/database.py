"""Database engine and session management for the shortly link service.

This module provides SQLAlchemy async engine setup, session factories,
and database lifecycle operations using PostgreSQL as the backend.

Flow Diagram: Database Operations
=================================
::
    ┌──────────────┐
    │ create_app() │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ create_engine│
    │ _from_       │
    │ settings()   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ create_      │
    │ session_     │
    │ factory()    │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ LinkStore /  │
    │ get_db()     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ close_db()   │
    │ (shutdown)   │
    └──────────────┘

How to Use
===========
**Step 1: Build the engine once at startup**::
    engine = create_engine_from_settings(settings)
    sessions = create_session_factory(engine)
    await init_db(engine)  # Creates tables

**Step 2: Use in FastAPI endpoints**::
    @router.get("/health")
    async def health(db: AsyncSession = Depends(get_db)):
        await db.execute(text("SELECT 1"))

**Step 3: Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- The engine is a process-scoped resource owned by the ServiceManager;
  there is no module-level engine.
- Connection pooling is configured for PostgreSQL; other drivers (the
  SQLite test database) get their driver defaults.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine_from_settings():  Builds the async engine.
    create_session_factory():  Builds the async_sessionmaker.
    get_db():  FastAPI dependency for database sessions.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortly.config import Settings

__all__ = [
    "Base",
    "create_engine_from_settings",
    "create_session_factory",
    "get_db",
    "init_db",
    "close_db",
]


class Base(DeclarativeBase):
    pass


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    options: dict = {"pool_pre_ping": True}
    if settings.DATABASE_URL.startswith("postgresql"):
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
        )
    return create_async_engine(settings.DATABASE_URL, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.services.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
