"""
Database engine and session factory.

Production runs on PostgreSQL through asyncpg, the test suite on SQLite
through aiosqlite. Stock mutations never commit from a request handler,
run_unit_of_work owns the transaction.
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from app.config import settings

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500


def _engine_options(url: str) -> dict:
    """Pool sizing only applies to server databases; SQLite picks its own pool."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,        # Base pool connections (default is 5)
        "max_overflow": 10,     # Additional connections for peak load (total max: 30)
        "pool_recycle": 3600,   # Recycle connections after 1 hour to prevent stale connections
        "pool_pre_ping": True,  # Test connection validity before use
    }


# echo stays off in production, see Settings.sqlalchemy_echo
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.sqlalchemy_echo,
    future=True,
    **_engine_options(settings.DATABASE_URL),
)


# Slow query logging
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_start_time"] = time.monotonic()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = conn.info.get("query_start_time")
    if start is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
        param_count = len(parameters) if parameters else 0
        truncated = statement[:200] + ("..." if len(statement) > 200 else "")
        logger.warning(
            "Slow query (%.0fms, %d params): %s", duration_ms, param_count, truncated
        )


def enable_slow_query_logging(target_engine) -> None:
    """Attach the slow query hooks to an async engine."""
    event.listen(target_engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(target_engine.sync_engine, "after_cursor_execute", _after_cursor_execute)


enable_slow_query_logging(engine)
logger.info("Slow query logging enabled (threshold: %dms)", SLOW_QUERY_THRESHOLD_MS)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


async def get_db() -> AsyncSession:
    """Request-scoped session, closed when the request finishes."""
    session = async_session_maker()
    try:
        yield session
    finally:
        await session.close()


async def init_db():
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
