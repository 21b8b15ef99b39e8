"""
Async Database Configuration
"""
import logging
import time
from urllib.parse import parse_qs, urlparse, urlunparse

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

if not DATABASE_URL:
    if config.TESTING:
        # In testing environment, use SQLite in-memory database as fallback
        DATABASE_URL = "sqlite+aiosqlite:///:memory:"
        logger.warning("Using in-memory SQLite database for testing")
    else:
        raise ValueError("DATABASE_URL environment variable is not set")

connect_args = {}
engine_kwargs = {}

if DATABASE_URL.startswith("sqlite"):
    if "+aiosqlite" not in DATABASE_URL:
        DATABASE_URL = DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
else:
    # asyncpg doesn't support query string parameters, so we remove them all
    parsed = urlparse(DATABASE_URL)
    query_params = parse_qs(parsed.query)
    sslmode = query_params.pop("sslmode", [None])[0]
    DATABASE_URL = urlunparse(parsed._replace(query=""))

    if sslmode in ["require", "prefer", "allow", "verify-ca", "verify-full"]:
        connect_args["ssl"] = True
    elif sslmode == "disable":
        connect_args["ssl"] = False

    # Heroku/Supabase style URLs -> asyncpg driver
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
    elif DATABASE_URL.startswith("postgresql://"):
        DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine_kwargs = {
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": config.DB_POOL_RECYCLE_SECONDS,
    }

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
    **engine_kwargs,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base
Base = declarative_base()


def _install_slow_query_logging(_engine):
    threshold_ms = config.SLOW_DB_QUERY_THRESHOLD_MS
    if threshold_ms <= 0:
        return

    slow_logger = logging.getLogger("db.slow_query")

    @event.listens_for(_engine.sync_engine, "before_cursor_execute")
    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(_engine.sync_engine, "after_cursor_execute")
    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start = getattr(context, "_query_start_time", None)
        if start is None:
            return
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if elapsed_ms < threshold_ms:
            return

        stmt = " ".join(str(statement).split())
        if len(stmt) > 500:
            stmt = stmt[:500] + "…"
        slow_logger.warning("SLOW_DB_QUERY | ms=%.1f | stmt=%s", elapsed_ms, stmt)


_install_slow_query_logging(engine)


async def get_async_db():
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables():
    """Create all tables"""
    from app.models import creator, messaging, user, wallet  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
