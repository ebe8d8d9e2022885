"""
tests/conftest.py

Shared fixtures: an in-memory SQLite database with the full schema, seeded
reference data and accounts, and a FastAPI TestClient bound to it.

Seeded accounts
---------------
admin      selector "admin"     password ADMIN_PASSWORD
governor   selector "governor"  password GOVERNOR_PASSWORD
operator   municipality 42      password OPERATOR_42_PASSWORD
operator   municipality 99      password OPERATOR_99_PASSWORD
operator   municipality 1       inactive
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SESSION_SECRET_KEY"] = "test-session-secret"
os.environ.setdefault("LOG_LEVEL", "INFO")

from collections.abc import Callable, Iterator  # noqa: E402
from io import BytesIO  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from openpyxl import Workbook  # noqa: E402
from sqlalchemy import create_engine, event, select  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import config as app_config  # noqa: E402
from app.services.auth_service import hash_password  # noqa: E402
from app.services.reference_data import seed_traffic_safety_catalog  # noqa: E402
from db.base import Base  # noqa: E402
from db.database import Database  # noqa: E402
from db.models import (  # noqa: E402
    IndicatorDefinition,
    Municipality,
    ServiceDefinition,
    User,
    UserRole,
)

ADMIN_PASSWORD = "admin-pass-123"
GOVERNOR_PASSWORD = "governor-pass-123"
OPERATOR_42_PASSWORD = "operator-pass-42"
OPERATOR_99_PASSWORD = "operator-pass-99"
INACTIVE_PASSWORD = "inactive-pass-1"

MUNICIPALITIES: tuple[tuple[int, str], ...] = (
    (1, "Данковский муниципальный район"),
    (2, "Добринский муниципальный район"),
    (3, "Елецкий муниципальный район"),
    (4, "Задонский муниципальный район"),
    (5, "Измалковский муниципальный район"),
    (6, "Лебедянский муниципальный район"),
    (7, "Усманский муниципальный район"),
    (8, "Чаплыгинский муниципальный район"),
    (42, "Грязинский муниципальный район"),
    (99, "Липецк"),
)

FORM_INDICATORS: tuple[tuple[str, str, bool], ...] = (
    ("gmu_population", "Численность населения", True),
    ("gmu_budget_income", "Доходы местного бюджета", True),
    ("gmu_legacy", "Устаревший показатель", False),
)

SERVICES: tuple[tuple[str, str, str | None], ...] = (
    ("svc_passport", "Выдача паспорта", "Документы"),
    ("svc_registration", "Регистрация по месту жительства", "Документы"),
    ("svc_subsidy", "Жилищные субсидии", None),
)


def _clear_settings_caches() -> None:
    for getter in (
        app_config.get_app_settings,
        app_config.get_session_settings,
        app_config.get_auth_settings,
        app_config.get_import_settings,
        app_config.get_dashboard_settings,
    ):
        getter.cache_clear()


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    _clear_settings_caches()
    yield
    _clear_settings_caches()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    test_engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(test_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def database(engine: Engine) -> Database:
    db = Database(engine)
    _seed(db)
    return db


def _seed(db: Database) -> None:
    with db.transaction() as session:
        for municipality_id, name in MUNICIPALITIES:
            session.add(Municipality(id=municipality_id, name=name, is_active=True))
        session.flush()

        for position, (code, name, active) in enumerate(FORM_INDICATORS, start=1):
            session.add(
                IndicatorDefinition(
                    code=code,
                    name=name,
                    unit="ед.",
                    form_code="form_1_gmu",
                    sort_order=position,
                    is_active=active,
                )
            )
        for position, (code, name, category) in enumerate(SERVICES, start=1):
            session.add(
                ServiceDefinition(code=code, name=name, unit="шт.", category=category, sort_order=position)
            )

        accounts = (
            (UserRole.ADMIN, None, ADMIN_PASSWORD, True),
            (UserRole.GOVERNOR, None, GOVERNOR_PASSWORD, True),
            (UserRole.OPERATOR, 42, OPERATOR_42_PASSWORD, True),
            (UserRole.OPERATOR, 99, OPERATOR_99_PASSWORD, True),
            (UserRole.OPERATOR, 1, INACTIVE_PASSWORD, False),
        )
        for role, municipality_id, password, active in accounts:
            session.add(
                User(
                    role=role,
                    municipality_id=municipality_id,
                    password_hash=hash_password(password, rounds=4),
                    is_active=active,
                    password_reset_required=False,
                )
            )

    seed_traffic_safety_catalog(db)


@pytest.fixture()
def indicator_ids(database: Database) -> dict[str, int]:
    """Catalog code -> id for every seeded indicator."""
    with database.transaction() as session:
        rows = session.execute(select(IndicatorDefinition.code, IndicatorDefinition.id)).all()
    return dict(rows)


@pytest.fixture()
def service_ids(database: Database) -> dict[str, int]:
    with database.transaction() as session:
        rows = session.execute(select(ServiceDefinition.code, ServiceDefinition.id)).all()
    return dict(rows)


@pytest.fixture()
def user_ids(database: Database) -> dict[str, int]:
    """``"admin"``, ``"governor"`` and ``"operator_<municipality_id>"`` -> user id."""
    with database.transaction() as session:
        users = session.scalars(select(User)).unique().all()
        mapping = {}
        for user in users:
            key = user.role if user.municipality_id is None else f"operator_{user.municipality_id}"
            mapping[key] = user.id
    return mapping


# ---------------------------------------------------------------------------
# Spreadsheets
# ---------------------------------------------------------------------------


def build_xlsx(title: str, rows: list[list[Any]]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    for row in rows:
        sheet.append(row)
    output = BytesIO()
    workbook.save(output)
    return output.getvalue()


@pytest.fixture()
def xlsx_factory() -> Callable[[str, list[list[Any]]], bytes]:
    return build_xlsx


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture()
def client(database: Database) -> Iterator[TestClient]:
    from app.main import create_app

    application = create_app(database=database)
    with TestClient(application) as test_client:
        yield test_client


def login(client: TestClient, selector: Any, password: str) -> None:
    response = client.post("/auth/login", json={"selector": selector, "password": password})
    assert response.status_code == 200, response.text
