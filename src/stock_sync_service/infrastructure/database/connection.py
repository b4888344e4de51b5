"""Database connection management for the catalog database."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stock_sync_service.config import Settings, get_settings


def create_catalog_engine(settings: Settings) -> AsyncEngine:
    """Create async database engine with connection pooling."""
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
    )


@asynccontextmanager
async def catalog_session(
    settings: Settings | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session on a dedicated engine and dispose the engine afterwards.

    Sync runs execute inside ``asyncio.run`` in worker processes, so the engine
    (and its asyncpg pool) must not outlive the event loop that created it.
    """
    engine = create_catalog_engine(settings or get_settings())
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with factory() as session:
            yield session
    finally:
        await engine.dispose()
