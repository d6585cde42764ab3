"""
Async engine and session factory for the ledger database.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) for local runs and tests.
"""

import logging

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from prophet.config import Settings
from prophet.storage.sql import SqlLedgerStore
from prophet.storage.tables import Base, UserRow

logger = logging.getLogger(__name__)

# Async engine and session factory
_async_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build an engine with pool settings appropriate for the dialect."""
    if database_url.startswith("sqlite"):
        # writers queue on the database lock rather than failing fast
        engine = create_async_engine(database_url, echo=echo, connect_args={"timeout": 30})
        _begin_immediate(engine)
        return engine
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def _begin_immediate(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock at BEGIN.

    The driver otherwise defers BEGIN to the first write, so reads made before
    it (market state, positions) are unlocked and can be stale by commit time.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


def get_engine(settings: Settings) -> AsyncEngine:
    """Get or create the process-wide engine."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_engine_for(settings.database_url, settings.database_echo)
    return _async_engine


def get_session_factory(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """Get or create the process-wide session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = create_session_factory(get_engine(settings))
    return _async_session_factory


async def init_db(engine: AsyncEngine, system_user_id: str) -> None:
    """Create all tables and make sure the system AI principal exists."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = create_session_factory(engine)
    async with factory() as session:
        async with session.begin():
            existing = await session.scalar(select(UserRow.id).where(UserRow.id == system_user_id))
            if existing is None:
                session.add(UserRow(id=system_user_id, email=None, is_admin=False))
                logger.info(f"Seeded system AI user {system_user_id}")

    logger.info("Database schema ready")


async def dispose_engine() -> None:
    """Close pooled connections."""
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
        _async_engine = None
        _async_session_factory = None


def get_ledger_store(settings: Settings) -> SqlLedgerStore:
    """SQL ledger store over the process-wide session factory."""
    return SqlLedgerStore(get_session_factory(settings))
