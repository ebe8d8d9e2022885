"""
tests/test_database.py

Tests for db/database.py.

Coverage
--------
- transaction() commits on exit and rolls back on exceptions.
- run_read() uses the replica when it is available.
- A failing replica is marked unavailable and the read falls back to the
  primary; probe_replica() restores it once reachable again.
- A failing primary re-checks an unavailable replica before the error
  propagates.
- Table-existence cache.
- /health reports a degraded replica.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from db.base import Base
from db.database import Database
from db.models.municipality import Municipality


def _count(session) -> int:
    return session.scalar(select(func.count()).select_from(Municipality))


@pytest.fixture()
def replica_engine(tmp_path: Path) -> Iterator[Engine]:
    replica = create_engine(f"sqlite:///{tmp_path / 'replica.db'}")
    Base.metadata.create_all(replica)
    yield replica
    replica.dispose()


@pytest.fixture()
def unreachable_engine(tmp_path: Path) -> Engine:
    return create_engine(f"sqlite:///{tmp_path / 'missing' / 'replica.db'}")


class TestTransaction:
    def test_commit_on_exit(self, engine: Engine) -> None:
        database = Database(engine)
        with database.transaction() as session:
            session.add(Municipality(id=500, name="Тестовый"))
        with database.transaction() as session:
            assert _count(session) == 1

    def test_rollback_on_error(self, engine: Engine) -> None:
        database = Database(engine)
        with pytest.raises(RuntimeError):
            with database.transaction() as session:
                session.add(Municipality(id=500, name="Тестовый"))
                session.flush()
                raise RuntimeError("boom")
        with database.transaction() as session:
            assert _count(session) == 0


class TestReplicaRouting:
    def test_reads_prefer_replica(self, engine: Engine, replica_engine: Engine) -> None:
        database = Database(engine, replica_engine)
        with database.transaction() as session:
            session.add(Municipality(id=500, name="Только на основной"))

        assert database.run_read(_count) == 0
        assert database.replica_available is True

    def test_failing_replica_falls_back_to_primary(self, engine: Engine, unreachable_engine: Engine) -> None:
        database = Database(engine, unreachable_engine)
        with database.transaction() as session:
            session.add(Municipality(id=500, name="Тестовый"))

        assert database.run_read(_count) == 1
        assert database.replica_available is False
        assert database.run_read(_count) == 1

    def test_probe_restores_replica(self, engine: Engine, replica_engine: Engine) -> None:
        database = Database(engine, replica_engine)
        database.mark_replica_unavailable()
        assert database.replica_available is False

        assert database.probe_replica() is True
        assert database.replica_available is True

    def test_primary_failure_rechecks_replica(self, replica_engine: Engine, unreachable_engine: Engine) -> None:
        database = Database(unreachable_engine, replica_engine)
        database.mark_replica_unavailable()

        with pytest.raises(OperationalError):
            database.run_read(_count)

        assert database.replica_available is True
        assert database.run_read(_count) == 0

    def test_primary_failure_keeps_unreachable_replica_down(self, unreachable_engine: Engine, tmp_path: Path) -> None:
        other_unreachable = create_engine(f"sqlite:///{tmp_path / 'gone' / 'primary.db'}")
        database = Database(other_unreachable, unreachable_engine)
        database.mark_replica_unavailable()

        with pytest.raises(OperationalError):
            database.run_read(_count)

        assert database.replica_available is False

    def test_probe_without_replica(self, engine: Engine) -> None:
        database = Database(engine)
        assert database.has_replica is False
        assert database.probe_replica() is False


class TestTableCache:
    def test_has_table(self, engine: Engine) -> None:
        database = Database(engine)
        assert database.has_table("indicator_values")
        assert not database.has_table("no_such_table")


class TestHealthDegraded:
    def test_unreachable_replica_is_degraded(self, database: Database, unreachable_engine: Engine) -> None:
        from app.main import create_app

        with_replica = Database(database.primary_engine, unreachable_engine)
        with TestClient(create_app(database=with_replica)) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "degraded", "database": "ok", "replica": "unavailable"}
