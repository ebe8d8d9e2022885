"""
Dialect-specific INSERT constructs for upserts.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_insert(session: Session, model: type) -> Any:
    """
    Return an INSERT supporting ``on_conflict_do_update`` for the session's dialect.

    PostgreSQL in deployment; SQLite for the test suite and local tooling.
    """

    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Upserts are not supported on dialect {dialect_name!r}.")
