# otohub_billing/db/database.py
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import NullPool

from otohub_billing.core.config import settings
from otohub_billing.core.exceptions import ConflictError

_TRANSACTION_FLAG = "otohub_billing.in_transaction"


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Start every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite's deferred BEGIN lets two writers read the same snapshot and
    then fail on lock upgrade; taking the write lock up front serializes
    writers the way row locks do on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for PostgreSQL (asyncpg) or SQLite (aiosqlite)."""
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _use_immediate_transactions(engine)
        return engine

    return create_async_engine(
        database_url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        echo=echo,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Create async session factory
async_session_local = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency"""
    async with async_session_local() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Session factory dependency for work that needs one session per unit."""
    return async_session_local


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on success, roll back on any error.

    Nested use joins the outermost unit, so a service called from inside
    another service's transaction never commits on its own.
    """
    if session.info.get(_TRANSACTION_FLAG):
        yield session
        return

    session.info[_TRANSACTION_FLAG] = True
    try:
        yield session
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise ConflictError("Record was modified concurrently, retry the request") from exc
    except BaseException:
        await session.rollback()
        raise
    finally:
        session.info.pop(_TRANSACTION_FLAG, None)


async def init_db(bind: AsyncEngine = engine):
    """Initialize database (create tables)"""
    from otohub_billing.db.base import Base
    from otohub_billing.db import models  # noqa: F401  registers all tables

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections"""
    await engine.dispose()
