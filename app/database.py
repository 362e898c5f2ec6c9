"""Database configuration and connection management."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings


def to_async_url(url: str) -> str:
    """Convert a sync PostgreSQL or SQLite URL to its async driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def is_sqlite_url(url: str) -> bool:
    """Check whether a URL points at SQLite."""
    return url.startswith("sqlite")


def build_async_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite connections open every transaction with ``BEGIN IMMEDIATE`` so
    concurrent writers queue on the database lock instead of failing when
    they upgrade from a read lock.

    Args:
        url: Database URL (sync or async form)
        **kwargs: Extra engine options

    Returns:
        Configured async engine
    """
    async_url = to_async_url(url)

    if is_sqlite_url(async_url):
        kwargs.setdefault("connect_args", {"timeout": 30})
        new_engine = create_async_engine(async_url, **kwargs)

        @event.listens_for(new_engine.sync_engine, "connect")
        def disable_pysqlite_begin(dbapi_conn: Any, connection_record: Any) -> None:
            """Let SQLAlchemy emit BEGIN itself."""
            dbapi_conn.isolation_level = None

        @event.listens_for(new_engine.sync_engine, "begin")
        def begin_immediate(conn: Any) -> None:
            """Take the write lock at transaction start."""
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return new_engine

    kwargs.setdefault("pool_pre_ping", True)
    kwargs.setdefault(
        "connect_args",
        {
            "server_settings": {
                "application_name": settings.app_name,
            },
        },
    )
    return create_async_engine(async_url, **kwargs)


# Create async engine with connection pooling
engine: AsyncEngine = (
    build_async_engine(settings.database_url, echo=settings.debug)
    if is_sqlite_url(settings.database_url)
    else build_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
    )
)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def check_database_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
