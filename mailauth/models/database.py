"""
mailauth.models.database - Database Configuration

Provides database connection and session management:
- get_engine: Create SQLAlchemy async engine
- get_sessionmaker: Create async session factory
- init_db: Create the schema directly (development only)
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from mailauth.models.base import Base
from mailauth.settings import get_settings


def get_engine(database_url: str | None = None, echo: bool = False) -> AsyncEngine:
    """
    Create SQLAlchemy async engine.

    Args:
        database_url: Database connection string (uses settings if not provided)
        echo: Whether to echo SQL queries (useful for debugging)

    Returns:
        AsyncEngine configured for PostgreSQL with asyncpg
    """
    url = database_url or get_settings().database_url

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=20,
    )


def get_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to ``engine``.

    Objects are not expired on commit so a configuration returned by the
    store can still be read after its transaction has finished.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(database_url: str | None = None) -> None:
    """
    Create every table known to ``Base.metadata``.

    In production, use Alembic migrations instead.
    """
    engine = get_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await engine.dispose()
