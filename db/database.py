"""
db/database.py

Database context shared by every component.

Holds the primary (read-write) engine, an optional read-replica engine, the
replica-availability flag and the table-existence cache. One instance is
created per process and injected through ``app.state.database``.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, inspect as sa_inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_database_url, resolve_read_database_url

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def create_db_engine(database_url: str) -> Engine:
    """
    Create a PostgreSQL SQLAlchemy engine with production-safe defaults.

    ``DB_POOL_TIMEOUT`` bounds connection acquisition; ``DB_STATEMENT_TIMEOUT_MS``
    is applied server-side to every statement.
    """

    if not database_url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    statement_timeout_ms = _get_int_env("DB_STATEMENT_TIMEOUT_MS", 30_000)
    return create_engine(
        database_url,
        echo=_get_bool_env("SQL_ECHO", default=False),
        pool_pre_ping=True,
        pool_recycle=_get_int_env("DB_POOL_RECYCLE", 1800),
        pool_size=_get_int_env("DB_POOL_SIZE", 5),
        max_overflow=_get_int_env("DB_MAX_OVERFLOW", 10),
        pool_timeout=_get_int_env("DB_POOL_TIMEOUT", 10),
        connect_args={"options": f"-c statement_timeout={statement_timeout_ms}"},
    )


def _session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


class Database:
    """
    Connection pools plus the small amount of process-wide state around them.

    Writes and read-after-write flows always go through :meth:`write_session`.
    Plain reads go through :meth:`run_read`, which prefers the replica while it
    is marked available and falls back to the primary once on failure.
    """

    def __init__(self, primary: Engine, replica: Engine | None = None) -> None:
        self._primary = primary
        self._replica = replica
        self._write_factory = _session_factory(primary)
        self._read_factory = _session_factory(replica) if replica is not None else None
        self._replica_available = replica is not None
        self._tables: frozenset[str] | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "Database":
        primary = create_db_engine(resolve_database_url())
        read_url = resolve_read_database_url()
        replica = create_db_engine(read_url) if read_url else None
        return cls(primary, replica)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @property
    def primary_engine(self) -> Engine:
        return self._primary

    def write_session(self) -> Session:
        """Return a new session bound to the primary. Caller closes it."""
        return self._write_factory()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Open a primary session wrapped in one transaction.

        Commits on normal exit, rolls back on any exception.
        """
        with self._write_factory() as session:
            with session.begin():
                yield session

    def run_read(self, operation: Callable[[Session], T]) -> T:
        """
        Run a read-only ``operation`` against the replica, or the primary.

        A replica ``OperationalError`` marks the replica unavailable and the
        operation is retried once on the primary. A primary failure triggers
        an opportunistic replica probe before the error propagates.
        """
        if self.replica_available and self._read_factory is not None:
            try:
                with self._read_factory() as session:
                    return operation(session)
            except OperationalError as exc:
                logger.warning("Read replica query failed, falling back to primary: %s", exc)
                self.mark_replica_unavailable()

        try:
            with self._write_factory() as session:
                return operation(session)
        except OperationalError:
            if self._replica is not None and not self.replica_available:
                self.probe_replica()
            raise

    # ------------------------------------------------------------------
    # Replica availability
    # ------------------------------------------------------------------

    @property
    def has_replica(self) -> bool:
        return self._replica is not None

    @property
    def replica_available(self) -> bool:
        return self._replica_available

    def mark_replica_unavailable(self) -> None:
        with self._lock:
            if self._replica_available:
                logger.error("Read replica marked unavailable")
            self._replica_available = False

    def mark_replica_available(self) -> None:
        with self._lock:
            if not self._replica_available and self._replica is not None:
                logger.info("Read replica marked available")
                self._replica_available = True

    def probe_replica(self) -> bool:
        """Run ``SELECT 1`` on the replica and update the availability flag."""
        if self._replica is None:
            return False
        try:
            with self._replica.connect() as connection:
                connection.execute(text("SELECT 1"))
        except OperationalError as exc:
            logger.warning("Read replica probe failed: %s", exc)
            self.mark_replica_unavailable()
            return False
        self.mark_replica_available()
        return True

    def ping(self) -> None:
        """Run ``SELECT 1`` on the primary. Raises when unreachable."""
        with self._primary.connect() as connection:
            connection.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Table-existence cache
    # ------------------------------------------------------------------

    def probe_tables(self) -> frozenset[str]:
        """
        Populate the table-existence cache once.

        Later calls return the cached set; schema changes during the process
        lifetime need a restart.
        """
        with self._lock:
            if self._tables is None:
                names = sa_inspect(self._primary).get_table_names()
                self._tables = frozenset(names)
                logger.info("Database tables discovered: %s", ", ".join(sorted(self._tables)))
            return self._tables

    def has_table(self, name: str) -> bool:
        return name in self.probe_tables()

    def dispose(self) -> None:
        self._primary.dispose()
        if self._replica is not None:
            self._replica.dispose()
