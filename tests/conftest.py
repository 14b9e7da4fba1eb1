"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import AsyncGenerator

# Add server directory to path
server_path = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_path))

import pytest_asyncio
from autoservice.models.base import Base
from autoservice.services.lifecycle import ServiceRecordLifecycleManager
from autoservice.services.record_store import SQLRecordStore
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session_maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def store(db_session: AsyncSession) -> SQLRecordStore:
    return SQLRecordStore(db_session)


@pytest_asyncio.fixture
async def manager(store: SQLRecordStore) -> ServiceRecordLifecycleManager:
    return ServiceRecordLifecycleManager(store, default_actor="user")


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client backed by the SQL record store."""
    from autoservice.main import app
    from autoservice.routes.service_records import get_record_store

    async def override_get_record_store():
        yield SQLRecordStore(db_session)

    app.dependency_overrides[get_record_store] = override_get_record_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
