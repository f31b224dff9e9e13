"""Dialect-aware INSERT ... ON CONFLICT builder.

PostgreSQL in production, SQLite in the test suite; both dialects expose
the same on_conflict_do_update / on_conflict_do_nothing API.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, model):
    """Return the dialect-specific insert() construct for `model`."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
