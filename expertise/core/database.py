"""Async database engine and session management.

Configures the SQLAlchemy async engine with connection pooling. The engine
is created lazily so the in-memory persistence backend never opens a pool.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from expertise.core.config import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the application's async engine.

    Args:
        database_url: Override for settings.database_url (tests use a
            separate database).

    Returns:
        AsyncEngine with pre-ping enabled.
    """
    return create_async_engine(
        database_url or settings.database_url,
        echo=settings.environment == "development",
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory repositories open their units of work from."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
