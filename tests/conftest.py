"""Shared pytest fixtures: SQLite store, fakeredis cache, and an API client."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortly.auth import issue_token
from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.database import close_db, create_engine_from_settings, create_session_factory, init_db
from shortly.dependencies import ServiceManager
from shortly.main import create_app
from shortly.store import LinkStore

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "JWT_SECRET": "test-secret-key-for-shortly",
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'shortly.db'}",
        "BASE_URL": "http://sho.rt",
        "METRICS_ENABLED": False,
        "EXPIRY_SWEEP_INTERVAL_SECONDS": 3600,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def settings_factory(tmp_path):
    def factory(**overrides) -> Settings:
        return make_settings(tmp_path, **overrides)

    return factory


@pytest.fixture
def redis_server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def redis_client(redis_server: FakeServer) -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine_from_settings(settings)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> LinkStore:
    return LinkStore(session_factory)


@pytest.fixture
def cache(redis_client: FakeAsyncRedis, settings: Settings) -> CacheLayer:
    return CacheLayer(redis_client, settings)


@pytest_asyncio.fixture
async def manager(settings: Settings, redis_client: FakeAsyncRedis) -> AsyncGenerator[ServiceManager, None]:
    # httpx's ASGITransport does not run the lifespan, so initialize here.
    manager = ServiceManager(settings, redis_client=redis_client)
    await manager.initialize()
    yield manager
    await manager.cleanup()


@pytest.fixture
def app(manager: ServiceManager) -> FastAPI:
    return create_app(manager.settings, manager)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(settings: Settings) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(settings, OWNER_ID)}"}


@pytest.fixture
def other_auth_headers(settings: Settings) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(settings, OTHER_OWNER_ID)}"}
