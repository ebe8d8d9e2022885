"""
tests/test_dashboard_service.py

Tests for app/services/dashboard_service.py.

Coverage
--------
- Services dashboard: KPI total, year-over-year change, 12-point monthly
  series with zero-filled gaps, top services, categories (null category
  labelled), top municipalities including those without data.
- Indicator dynamics per month, optionally filtered by form.
- Recent changes ordering and limit clamping.
- Available periods newest first.
- Missing value tables and operational errors degrade to empty payloads
  instead of failing.
- Cross-municipality comparison over several months and the per-period
  listing of every municipality.
- change_percent edge cases.
"""

from __future__ import annotations

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from app import config as app_config
from app.domain.values import ValueEntry
from app.services.dashboard_service import DashboardService, change_percent
from app.services.value_store import ValueStore
from db.database import Database
from db.models.values import ServiceValue


@pytest.fixture()
def services_data(database: Database, service_ids: dict[str, int]) -> None:
    store = ValueStore(database)
    store.upsert_values(
        "services",
        42,
        2025,
        3,
        [
            ValueEntry(service_ids["svc_passport"], 100),
            ValueEntry(service_ids["svc_registration"], 40),
            ValueEntry(service_ids["svc_subsidy"], 10),
        ],
    )
    store.upsert_values("services", 99, 2025, 3, [ValueEntry(service_ids["svc_passport"], 50)])
    store.upsert_values("services", 42, 2024, 3, [ValueEntry(service_ids["svc_passport"], 160)])


# ---------------------------------------------------------------------------
# Services dashboard
# ---------------------------------------------------------------------------


class TestServicesDashboard:
    def test_monthly_series_is_zero_filled(self, database: Database, services_data: None) -> None:
        payload = DashboardService(database).services_dashboard(2025)

        series = payload["monthly_dynamics"]
        assert [point["month"] for point in series] == list(range(1, 13))
        assert series[2]["total"] == 200.0
        assert all(point["total"] == 0 for point in series if point["month"] != 3)

    def test_kpi_and_change(self, database: Database, services_data: None) -> None:
        kpi = DashboardService(database).services_dashboard(2025)["kpi"]
        assert kpi == {"total_services": 200.0, "prev_total_services": 160.0, "change_percent": 25.0}

    def test_no_previous_year_means_no_change(self, database: Database, services_data: None) -> None:
        kpi = DashboardService(database).services_dashboard(2024, municipality_id=99)["kpi"]
        assert kpi["total_services"] == 0.0
        assert kpi["change_percent"] is None

    def test_breakdowns(self, database: Database, services_data: None) -> None:
        payload = DashboardService(database).services_dashboard(2025, month=3)

        assert [(s["name"], s["total"]) for s in payload["top_services"]] == [
            ("Выдача паспорта", 150.0),
            ("Регистрация по месту жительства", 40.0),
            ("Жилищные субсидии", 10.0),
        ]
        assert {c["category"]: c["total"] for c in payload["categories"]} == {
            "Документы": 190.0,
            "Без категории": 10.0,
        }
        top = payload["top_municipalities"]
        assert (top[0]["id"], top[0]["total"]) == (42, 150.0)
        assert (top[1]["id"], top[1]["total"]) == (99, 50.0)
        assert all(row["total"] == 0.0 for row in top[2:])

    def test_scoped_to_municipality(self, database: Database, services_data: None) -> None:
        payload = DashboardService(database).services_dashboard(2025, municipality_id=99)
        assert payload["kpi"]["total_services"] == 50.0
        assert [row["id"] for row in payload["top_municipalities"]] == [99]

    def test_missing_value_table_returns_empty_payload(self, engine, database: Database) -> None:
        ServiceValue.__table__.drop(engine)

        payload = DashboardService(database).services_dashboard(2025)

        assert payload["kpi"]["total_services"] == 0
        assert len(payload["monthly_dynamics"]) == 12
        assert payload["top_services"] == []
        assert DashboardService(database).stats()["service_values"] == 0

    def test_operational_error_returns_empty_payload(self, database: Database, services_data: None) -> None:
        database.probe_tables()

        def fail_selects(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith("SELECT"):
                raise OperationalError(statement, parameters, RuntimeError("server closed the connection"))

        engine = database.primary_engine
        event.listen(engine, "before_cursor_execute", fail_selects)
        try:
            payload = DashboardService(database).services_dashboard(2025)
        finally:
            event.remove(engine, "before_cursor_execute", fail_selects)

        assert payload["kpi"] == {"total_services": 0, "prev_total_services": 0, "change_percent": None}
        assert payload["monthly_dynamics"] == [{"month": month, "total": 0} for month in range(1, 13)]
        assert payload["top_services"] == []
        assert payload["categories"] == []
        assert payload["top_municipalities"] == []


# ---------------------------------------------------------------------------
# Indicators, recent changes, periods
# ---------------------------------------------------------------------------


class TestIndicatorViews:
    def test_dynamics_by_form(self, database: Database, indicator_ids: dict[str, int]) -> None:
        store = ValueStore(database)
        store.upsert_values(
            "indicators",
            42,
            2025,
            5,
            [ValueEntry(indicator_ids["gmu_population"], 7), ValueEntry(indicator_ids["dtp_total"], 3)],
        )
        service = DashboardService(database)

        everything = service.indicator_dynamics(2025)["by_month"][4]
        assert everything == {"month": 5, "total_value": 10.0, "records": 2}

        traffic = service.indicator_dynamics(2025, form_code="traffic_safety")["by_month"][4]
        assert traffic == {"month": 5, "total_value": 3.0, "records": 1}

        january = service.indicator_dynamics(2025)["by_month"][0]
        assert january == {"month": 1, "total_value": 0, "records": 0}

    def test_recent_changes_limit_is_clamped(
        self, database: Database, indicator_ids: dict[str, int], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DASHBOARD_RECENT_LIMIT_MAX", "3")
        app_config.get_dashboard_settings.cache_clear()

        store = ValueStore(database)
        for month in range(1, 6):
            store.upsert_values("indicators", 42, 2025, month, [ValueEntry(indicator_ids["gmu_population"], month)])
        service = DashboardService(database)

        assert len(service.recent_changes(limit=50)) == 3
        assert len(service.recent_changes(limit=0)) == 1
        latest = service.recent_changes(limit=1)[0]
        assert latest["municipality_name"] == "Грязинский муниципальный район"
        assert latest["item_code"] == "gmu_population"

    def test_available_periods_newest_first(self, database: Database, indicator_ids: dict[str, int]) -> None:
        store = ValueStore(database)
        entry = [ValueEntry(indicator_ids["gmu_population"], 1)]
        store.upsert_values("indicators", 42, 2024, 12, entry)
        store.upsert_values("indicators", 99, 2025, 2, entry)
        store.upsert_values("indicators", 42, 2025, 2, entry)

        periods = DashboardService(database).available_periods("indicators")
        assert [p["label"] for p in periods] == ["2025-02", "2024-12"]
        scoped = DashboardService(database).available_periods("indicators", municipality_id=99)
        assert [p["label"] for p in scoped] == ["2025-02"]

    def test_stats(self, database: Database, indicator_ids: dict[str, int]) -> None:
        ValueStore(database).upsert_values(
            "indicators", 42, 2025, 1, [ValueEntry(indicator_ids["gmu_population"], 1)]
        )
        assert DashboardService(database).stats() == {
            "municipalities": 10,
            "indicator_values": 1,
            "service_values": 0,
        }


# ---------------------------------------------------------------------------
# Cross-municipality views
# ---------------------------------------------------------------------------


class TestComparisons:
    def test_compare_months_across_municipalities(
        self, database: Database, service_ids: dict[str, int], services_data: None
    ) -> None:
        ValueStore(database).upsert_values("services", 99, 2025, 4, [ValueEntry(service_ids["svc_passport"], 65)])

        rows = DashboardService(database).compare([(2025, 4), (2025, 3)], kind="services")

        assert [(r["municipality_id"], r["item_code"], r["period_month"], r["value"]) for r in rows] == [
            (42, "svc_passport", 3, 100.0),
            (42, "svc_registration", 3, 40.0),
            (42, "svc_subsidy", 3, 10.0),
            (99, "svc_passport", 3, 50.0),
            (99, "svc_passport", 4, 65.0),
        ]
        assert rows[0]["municipality_name"] == "Грязинский муниципальный район"

    def test_compare_filtered_to_items(
        self, database: Database, service_ids: dict[str, int], services_data: None
    ) -> None:
        rows = DashboardService(database).compare(
            [(2025, 3), (2024, 3)], item_ids=[service_ids["svc_passport"]], kind="services"
        )

        assert [(r["municipality_id"], r["period_year"], r["value"]) for r in rows] == [
            (42, 2024, 160.0),
            (42, 2025, 100.0),
            (99, 2025, 50.0),
        ]

    def test_compare_without_months_is_empty(self, database: Database, services_data: None) -> None:
        assert DashboardService(database).compare([], kind="services") == []

    def test_period_values_lists_every_reporting_municipality(
        self, database: Database, indicator_ids: dict[str, int]
    ) -> None:
        store = ValueStore(database)
        store.upsert_values(
            "indicators",
            99,
            2025,
            8,
            [ValueEntry(indicator_ids["dtp_total"], 30), ValueEntry(indicator_ids["dtp_total_dead"], 2)],
        )
        store.upsert_values(
            "indicators",
            42,
            2025,
            8,
            [ValueEntry(indicator_ids["dtp_total"], 5), ValueEntry(indicator_ids["gmu_population"], 45210)],
        )
        store.upsert_values("indicators", 1, 2025, 7, [ValueEntry(indicator_ids["dtp_total"], 9)])
        service = DashboardService(database)

        traffic = service.period_values(2025, 8, catalog_group="traffic_safety")
        assert traffic == [
            {
                "municipality_id": 42,
                "municipality_name": "Грязинский муниципальный район",
                "values": {"dtp_total": 5.0},
            },
            {
                "municipality_id": 99,
                "municipality_name": "Липецк",
                "values": {"dtp_total": 30.0, "dtp_total_dead": 2.0},
            },
        ]

        everything = service.period_values(2025, 8)
        assert everything[0]["values"] == {"dtp_total": 5.0, "gmu_population": 45210.0}
        assert service.period_values(2025, 6) == []

    def test_missing_value_table_degrades(self, engine, database: Database) -> None:
        ServiceValue.__table__.drop(engine)
        service = DashboardService(database)

        assert service.compare([(2025, 3)], kind="services") == []
        assert service.period_values(2025, 3, kind="services") == []


class TestChangePercent:
    @pytest.mark.parametrize(
        "current, previous, expected",
        [(150, 100, 50.0), (50, 100, -50.0), (1, 3, -66.7), (10, 0, None), (10, -5, None)],
    )
    def test_values(self, current: float, previous: float, expected) -> None:
        assert change_percent(current, previous) == expected
