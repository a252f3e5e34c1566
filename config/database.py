import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from alembic import command
from alembic.config import Config

from .base import Settings, get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url(settings: Settings, is_async=False) -> str:
    """Construct the database URL based on environment settings.

    Parameters
    ----------
    settings: Settings
        Application settings object.
    is_async: bool, default=False
        Boolean indicating whether to return an asynchronous URL.

    Returns
    -------
    str
        String representing the database connection URL.
    """
    if settings.database_url:
        if is_async:
            return settings.database_url
        url = make_url(settings.database_url)
        return url.set(drivername=url.get_backend_name()).render_as_string(
            hide_password=False
        )

    if is_async:
        return f"sqlite+aiosqlite:///{settings.base_dir}/db.sqlite3"
    else:
        return f"sqlite:///{settings.base_dir}/db.sqlite3"


async def get_database_engine():
    """Provide a singleton asynchronous SQLAlchemy database engine.

    Returns
    -------
    _engine
        Asynchronous SQLAlchemy engine instance.
    """
    global _engine

    if _engine is None:
        settings = get_settings()
        database_url = get_database_url(settings, is_async=True)
        _engine = create_async_engine(database_url, echo=False)

    return _engine


async def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Provide a singleton session factory bound to the shared engine.

    Returns
    -------
    async_sessionmaker[AsyncSession]
        Factory producing sessions that do not expire objects on commit.
    """
    global _session_factory

    if _session_factory is None:
        engine = await get_database_engine()
        _session_factory = async_sessionmaker(engine, expire_on_commit=False)

    return _session_factory


async def close_database_engine():
    """Dispose of existing database engine."""
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def get_database_session():
    """Provide an asynchronous SQLAlchemy session.

    Yields
    ------
    session
        Asynchronous SQLAlchemy session instance.
    """
    async with database_session() as session:
        yield session


@asynccontextmanager
async def database_session() -> AsyncIterator[AsyncSession]:
    """Open a standalone session for callers living outside a request.

    Yields
    ------
    AsyncSession
        Session closed when the context exits.
    """
    session_factory = await get_session_factory()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables():
    """Asynchronously create all database tables defined in SQLModel metadata."""
    from notifications.infrastructure import models  # noqa: F401

    engine = await get_database_engine()
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)


async def run_migrations():
    """Apply all pending database migrations.

    Executes unapplied migrations in chronological order to bring database schema
    up to date with current model definitions. Alembic drives its own event loop,
    so the upgrade runs in a worker thread.

    Raises
    ------
    AlembicError
        If migration conflicts exist or database connection fails.
    """
    settings = get_settings()
    database_url = get_database_url(settings, is_async=True)

    alembic_cfg = Config(str(settings.base_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(settings.base_dir / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", str(database_url))
    await asyncio.to_thread(command.upgrade, alembic_cfg, "head")
