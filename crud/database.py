"""
CRUD App: Database Session Management
=====================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   Creates an async engine (pooled for server databases), provides a session
       dependency that commits on success and rolls back on error.
Who:   Route handlers via FastAPI's dependency injection, the health checker,
       the app lifespan and Alembic.
When:  The default engine is created at module import; each app builds its
       session factory from the engine it was given; sessions are per-request.

Connection Pooling:
    pool_size     ← DB_MAX_IDLE_CONNS      connections kept open
    max_overflow  ← DB_MAX_OPEN_CONNS - DB_MAX_IDLE_CONNS
    pool_recycle  ← DB_CONN_MAX_LIFETIME   seconds before a connection is replaced
    pool_pre_ping ← DB_POOL_PRE_PING

    SQLite URLs (tests, local runs) get no pool arguments; the SQLite dialect
    uses its own pool classes that do not accept them.
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    before_sleep_log,
    retry,
    stop_after_attempt,
    wait_exponential,
)

from crud.config import Settings, settings

logger = logging.getLogger(__name__)


def is_sqlite_url(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def enable_sqlite_foreign_keys(target: AsyncEngine) -> None:
    """
    Turn on foreign key enforcement for every new SQLite connection.

    SQLite ignores REFERENCES clauses unless ``PRAGMA foreign_keys`` is set
    per connection; the Account → User cascade depends on it.
    """

    @event.listens_for(target.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(config: Settings) -> AsyncEngine:
    """Create the async engine for ``config.database_url``."""
    url = config.database_url
    kwargs = {"echo": config.log_level == "DEBUG"}

    if not is_sqlite_url(url):
        idle = config.db_max_idle_conns
        kwargs.update(
            pool_size=idle,
            max_overflow=max(0, config.db_max_open_conns - idle),
            pool_pre_ping=config.db_pool_pre_ping,
            pool_recycle=int(config.db_conn_max_lifetime),
        )

    new_engine = create_async_engine(url, **kwargs)
    if is_sqlite_url(url):
        enable_sqlite_foreign_keys(new_engine)
    return new_engine


# ── Engine Configuration ──────────────────────────────────────────────────
engine = build_engine(settings)


# ── Session Factory ───────────────────────────────────────────────────────
def build_session_factory(target: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: attributes stay readable after commit without a
    # new round-trip, which async sessions cannot do lazily
    return async_sessionmaker(
        target,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Models register with ``Base.metadata``, which Alembic and ``init_models``
    use to build the schema.
    """
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Sessions come from ``app.state.session_factory``, which create_app()
    binds to the same engine as the health checks.

    How it works:
        1. Creates a new session from the app's factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction and re-raises
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/users")
        async def list_users(db: AsyncSession = Depends(get_db_session)):
            return await user_service.list_users(db)
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def ping_database(target: Optional[AsyncEngine] = None) -> None:
    """Run ``SELECT 1``; raises whatever the driver raises when the DB is down."""
    async with (target if target is not None else engine).connect() as conn:
        await conn.execute(text("SELECT 1"))


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def init_models(target: Optional[AsyncEngine] = None) -> None:
    """
    What:  Creates any missing tables from ``Base.metadata``.
    When:  Application startup. Retried with exponential backoff because the
           database container is often still starting when the app boots.
    """
    # Import registers the models on Base.metadata
    from crud import models  # noqa: F401

    async with (target if target is not None else engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")

