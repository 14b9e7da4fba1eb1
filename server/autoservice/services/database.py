"""Database connection and session management."""

from typing import AsyncIterator, Optional

from autoservice.config import settings
from autoservice.models.base import Base
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


async def init_db(database_url: Optional[str] = None):
    """Initialize database engine and create tables."""
    global engine, async_session_maker

    url = database_url or settings.DATABASE_URL
    options = {"echo": settings.DEBUG, "future": True}
    if not url.startswith("sqlite"):
        options["pool_pre_ping"] = True

    engine = create_async_engine(url, **options)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database engine."""
    global engine, async_session_maker
    if engine:
        await engine.dispose()
    engine = None
    async_session_maker = None


async def get_db() -> AsyncIterator[AsyncSession]:
    """Get database session."""
    if async_session_maker is None:
        raise RuntimeError("Database is not initialized, call init_db() first")
    async with async_session_maker() as session:
        yield session
