"""Dialect-aware INSERT ... ON CONFLICT helper.

PostgreSQL in production and SQLite in tests both support ON CONFLICT,
but through different dialect insert constructs.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(db: AsyncSession, model):
    """Return an insert() for *model* that exposes on_conflict_do_* for the session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Upsert is not supported on dialect {dialect!r}")
