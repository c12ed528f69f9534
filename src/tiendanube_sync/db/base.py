"""Database configuration and setup."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def get_engine(database_url: str) -> AsyncEngine:
    """Create async engine.

    In-memory SQLite needs a single shared connection so every session sees
    the same tables.
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_async_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables on the given engine."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_session_factory(engine: AsyncEngine):
    """Create async session factory."""
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
