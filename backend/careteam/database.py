"""Database engine, session factory and declarative base."""

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from careteam.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def engine_options(database_url: str) -> dict[str, Any]:
    """Build engine keyword arguments for the configured backend.

    Timeouts only apply to the pooled asyncpg driver; SQLite (used by the
    test suite) runs on a single connection.
    """
    options: dict[str, Any] = {"echo": settings.database_echo}
    if database_url.startswith("postgresql+asyncpg"):
        options.update(
            pool_size=settings.database_pool_size,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
            connect_args={
                "timeout": settings.database_connect_timeout,
                "command_timeout": settings.database_command_timeout,
            },
        )
    return options


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """Let SQLite honour SAVEPOINT.

    The sqlite3 driver issues its own BEGIN lazily, which breaks nested
    transactions. Disable that and emit BEGIN from SQLAlchemy instead.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))
if settings.database_url.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session.

    Commits when the request handler returns and rolls back on any error.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
