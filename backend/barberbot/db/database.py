"""
Database connection and session management using SQLAlchemy async.

The engine and session factory are created lazily on first use and shared
by the whole process.
"""
from datetime import datetime, timezone
from functools import lru_cache
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from barberbot.core.config import settings


# Base class for all models
Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite does not enforce foreign keys unless asked to, so the pragma is
    switched on for every new connection to keep ON DELETE CASCADE working.
    """
    engine = create_async_engine(
        database_url,
        echo=echo,  # Log SQL queries in debug mode
        pool_pre_ping=True,  # Verify connections before using them
    )

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first call."""
    return build_engine(settings.DATABASE_URL, echo=settings.DEBUG)


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide session factory bound to get_engine()."""
    return build_session_factory(get_engine())


async def init_db(engine: AsyncEngine | None = None):
    """
    Initialize database - create all tables.
    This should be called on application startup.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        # Import all models here to ensure they are registered
        from barberbot.models import user, conversation, message  # noqa: F401

        # Create all tables
        await conn.run_sync(Base.metadata.create_all)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the format every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
