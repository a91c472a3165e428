"""Database engine, session factory and schema bootstrap for the billing mirror.

PostgreSQL through asyncpg in deployment; SQLite through aiosqlite for local
runs and the test suite. The mirror, ledger, vault and pipeline tables all
share one ``Base.metadata`` and are created with ``create_all``.
"""

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from billing_sync.core.config import get_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for ``db_url``.

    Server databases get ``pool_pre_ping``. SQLite connections turn on
    foreign key enforcement, which SQLite leaves off per connection, so deal
    and case stage pointers are checked the same way as on PostgreSQL.
    """
    if db_url.startswith("sqlite"):
        engine = create_async_engine(db_url, echo=echo)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_async_engine(db_url, echo=echo, pool_pre_ping=True)


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table registered on ``Base.metadata`` that does not exist yet."""
    # Import all models so metadata is populated before create_all
    import billing_sync.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(url: str | None = None) -> None:
    """Initialize the process-wide engine and session factory, then create the schema.

    A second call while initialized is a no-op.
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    settings = get_settings()
    _engine = build_engine(url or settings.database_url, echo=settings.debug)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    await create_schema(_engine)
    logger.info("database_ready", dialect=_engine.dialect.name)


async def close_db() -> None:
    """Dispose of the engine and release all connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory shared by the ledger, mirror, lifecycle and vault.

    Raises RuntimeError if init_db() has not been called.
    """
    if _session_factory is None:
        raise RuntimeError("Billing database not initialized. Call init_db() first.")
    return _session_factory
