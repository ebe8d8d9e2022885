"""
tests/test_api.py

End-to-end HTTP tests through FastAPI's TestClient against the seeded
SQLite database.

Coverage
--------
- /health reports database and replica state.
- Login, /auth/me, logout and password change through the session cookie.
- Error bodies use {"error": code, "message": text} with the right status.
- Operators save and read only their own municipality; other ids are 403,
  a missing id is 400.
- The governor reads aggregates and is refused writes and single-municipality
  views. Month comparisons and per-period listings span every municipality
  and are closed to operators.
- Admin-only import and export endpoints.
- Public municipality list and the scope=mine narrowing.
- Account administration and municipality deletion conflicts.
"""

from __future__ import annotations

from io import BytesIO

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from app.domain.values import ValueEntry
from app.services.import_schemas import TRAFFIC_SAFETY_COLUMNS
from app.services.value_store import ValueStore
from db.database import Database
from tests.conftest import (
    ADMIN_PASSWORD,
    GOVERNOR_PASSWORD,
    OPERATOR_42_PASSWORD,
    build_xlsx,
    login,
)

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _traffic_workbook() -> bytes:
    header = ["Муниципальное образование"] + [name for _, name in TRAFFIC_SAFETY_COLUMNS]
    values = list(range(1, len(TRAFFIC_SAFETY_COLUMNS) + 1))
    return build_xlsx(
        "Август 2025",
        [header, ["Грязинский район"] + values, ["Липецкая область"] + values, ["Нет такого"] + values],
    )


# ---------------------------------------------------------------------------
# Health and sessions
# ---------------------------------------------------------------------------


class TestHealth:
    def test_primary_only(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "ok", "replica": "not_configured"}


class TestSessions:
    def test_me_requires_session(self, client: TestClient) -> None:
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_admin_login_and_me(self, client: TestClient) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        body = client.get("/auth/me").json()
        assert body["role"] == "admin"
        assert body["municipality_id"] is None

    def test_operator_login_with_numeric_selector(self, client: TestClient) -> None:
        response = client.post("/auth/login", json={"municipalityId": "42", "password": OPERATOR_42_PASSWORD})
        assert response.status_code == 200
        assert response.json()["municipality_name"] == "Грязинский муниципальный район"

    def test_wrong_password(self, client: TestClient) -> None:
        response = client.post("/auth/login", json={"selector": "admin", "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized", "message": "Invalid municipality or password."}

    def test_bad_selector(self, client: TestClient) -> None:
        response = client.post("/auth/login", json={"selector": "mayor", "password": "whatever"})
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"

    def test_logout_clears_session(self, client: TestClient) -> None:
        login(client, "governor", GOVERNOR_PASSWORD)
        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401

    def test_change_password(self, client: TestClient) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)
        response = client.post(
            "/auth/change-password",
            json={"oldPassword": OPERATOR_42_PASSWORD, "newPassword": "fresh-password-1"},
        )
        assert response.status_code == 200

        client.post("/auth/logout")
        login(client, 42, "fresh-password-1")

    def test_validation_errors_are_bad_request(self, client: TestClient) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)
        response = client.post("/reports/save", json={"municipalityId": 42, "year": "abc", "month": 1})
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class TestOperatorReports:
    def test_save_and_read_own_municipality(self, client: TestClient, indicator_ids: dict[str, int]) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)
        population = indicator_ids["gmu_population"]

        response = client.post(
            "/reports/save",
            json={
                "municipalityId": 42,
                "year": 2025,
                "month": 3,
                "formCode": "form_1_gmu",
                "values": [{"indicatorId": population, "value": "1 500"}, {"indicatorId": 999999, "value": 1}],
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["saved_count"] == 1
        assert body["dropped"] == [{"index": 1, "reason": "unknown_item", "item_id": 999999}]

        stored = client.get("/reports/values", params={"municipalityId": 42, "year": 2025, "month": 3})
        assert stored.status_code == 200
        assert stored.json()["values"] == {str(population): 1500.0}

    def test_other_municipality_is_forbidden(self, client: TestClient, indicator_ids: dict[str, int]) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)
        response = client.post(
            "/reports/save",
            json={"municipalityId": 99, "year": 2025, "month": 3, "values": [{"id": indicator_ids["gmu_population"], "value": 1}]},
        )
        assert response.status_code == 403
        assert response.json() == {"error": "forbidden", "message": "Access denied."}

        read = client.get("/reports/values", params={"municipalityId": 99, "year": 2025, "month": 3})
        assert read.status_code == 403

    def test_missing_municipality_is_bad_request(self, client: TestClient) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)
        response = client.post("/reports/save", json={"year": 2025, "month": 3, "values": []})
        assert response.status_code == 400
        assert response.json()["message"] == "missing scope"

    def test_month_out_of_range(self, client: TestClient) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)
        response = client.post("/reports/save", json={"municipalityId": 42, "year": 2025, "month": 13, "values": []})
        assert response.status_code == 400

    def test_operator_cannot_import(self, client: TestClient) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)
        response = client.post("/reports/import", files={"file": ("report.xlsx", _traffic_workbook(), XLSX)})
        assert response.status_code == 403


class TestGovernor:
    def test_reads_aggregates_only(self, client: TestClient, indicator_ids: dict[str, int]) -> None:
        login(client, "governor", GOVERNOR_PASSWORD)

        assert client.get("/dashboard/data", params={"year": 2025}).status_code == 200
        assert client.get("/dashboard/stats").status_code == 200
        assert client.get("/dashboard/data", params={"year": 2025, "municipalityId": 42}).status_code == 403

        save = client.post(
            "/reports/save",
            json={"municipalityId": 42, "year": 2025, "month": 3, "values": [{"id": indicator_ids["gmu_population"], "value": 1}]},
        )
        assert save.status_code == 403

    def test_compares_municipalities(
        self, client: TestClient, database: Database, indicator_ids: dict[str, int]
    ) -> None:
        store = ValueStore(database)
        dtp_total = indicator_ids["dtp_total"]
        store.upsert_values("indicators", 42, 2025, 7, [ValueEntry(dtp_total, 4)])
        store.upsert_values("indicators", 42, 2025, 8, [ValueEntry(dtp_total, 6)])
        store.upsert_values(
            "indicators", 99, 2025, 8, [ValueEntry(dtp_total, 30), ValueEntry(indicator_ids["gmu_population"], 1)]
        )
        login(client, "governor", GOVERNOR_PASSWORD)

        response = client.get(
            "/dashboard/compare", params={"months": ["2025-07", "2025-08"], "itemIds": [dtp_total]}
        )
        assert response.status_code == 200, response.text
        assert [(r["municipality_id"], r["period_month"], r["value"]) for r in response.json()] == [
            (42, 7, 4.0),
            (42, 8, 6.0),
            (99, 8, 30.0),
        ]

        listing = client.get("/dashboard/period-values", params={"period": "2025-08"})
        assert listing.status_code == 200
        assert [(row["municipality_name"], row["values"]) for row in listing.json()] == [
            ("Грязинский муниципальный район", {"dtp_total": 6.0}),
            ("Липецк", {"dtp_total": 30.0}),
        ]

        assert client.get("/dashboard/compare").status_code == 400
        assert client.get("/dashboard/compare", params={"months": "август"}).status_code == 400
        assert client.get("/dashboard/period-values", params={"period": "2025-13"}).status_code == 400

    def test_operator_cannot_compare(self, client: TestClient) -> None:
        login(client, 42, OPERATOR_42_PASSWORD)

        assert client.get("/dashboard/compare", params={"months": "2025-08"}).status_code == 403
        assert client.get("/dashboard/period-values", params={"period": "2025-08"}).status_code == 403


class TestAdminImportExport:
    def test_import_summary(self, client: TestClient) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        response = client.post(
            "/reports/import",
            files={"file": ("dtp.xlsx", _traffic_workbook(), XLSX)},
            data={"import_type": "traffic_safety"},
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["period"] == "2025-08"
        assert body["imported"] == 1
        assert [issue["label"] for issue in body["skipped"]] == ["Липецкая область"]
        assert body["errors"][0]["message"] == "Municipality not found: Нет такого"

        periods = client.get("/dashboard/periods").json()
        assert periods[0]["label"] == "2025-08"

    def test_import_rejects_non_xlsx(self, client: TestClient) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        response = client.post("/reports/import", files={"file": ("data.csv", b"a,b\n1,2\n", "text/csv")})
        assert response.status_code == 400

    def test_import_structural_error(self, client: TestClient) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        content = build_xlsx("Лист1", [["Муниципальное образование", "ДТП"], ["Грязинский район", 1]])
        response = client.post("/reports/import", files={"file": ("dtp.xlsx", content, XLSX)})
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"

    def test_export_workbook(self, client: TestClient, indicator_ids: dict[str, int]) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        client.post(
            "/reports/save",
            json={"municipalityId": 42, "year": 2025, "month": 3, "values": [{"id": indicator_ids["gmu_population"], "value": 7}]},
        )

        response = client.post("/reports/export", json={"kind": "indicators", "year": 2025, "detailed": True})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith(XLSX)
        assert 'filename="indicators_2025.xlsx"' in response.headers["content-disposition"]
        workbook = load_workbook(BytesIO(response.content))
        assert workbook.sheetnames == ["Значения", "Сводка"]
        rows = list(workbook["Значения"].iter_rows(values_only=True))
        assert len(rows) == 2
        assert rows[1][0] == "Грязинский муниципальный район"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestCatalog:
    def test_public_municipality_list(self, client: TestClient) -> None:
        response = client.get("/municipalities")
        assert response.status_code == 200
        assert len(response.json()) == 10

    def test_scope_mine(self, client: TestClient) -> None:
        assert client.get("/municipalities", params={"scope": "mine"}).status_code == 401
        login(client, 42, OPERATOR_42_PASSWORD)
        mine = client.get("/municipalities", params={"scope": "mine"}).json()
        assert [row["id"] for row in mine] == [42]

    def test_indicator_catalog_requires_session(self, client: TestClient) -> None:
        assert client.get("/catalog/indicators/form_1_gmu").status_code == 401
        login(client, 42, OPERATOR_42_PASSWORD)
        codes = [row["code"] for row in client.get("/catalog/indicators/form_1_gmu").json()]
        assert codes == ["gmu_population", "gmu_budget_income"]


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


class TestAdministration:
    def test_non_admin_refused(self, client: TestClient) -> None:
        login(client, "governor", GOVERNOR_PASSWORD)
        assert client.get("/admin/users").status_code == 403

    def test_create_and_conflict(self, client: TestClient) -> None:
        login(client, "admin", ADMIN_PASSWORD)

        created = client.post("/admin/users", json={"role": "operator", "municipalityId": 2, "password": "operator-2-pass"})
        assert created.status_code == 201
        assert created.json()["municipality_id"] == 2

        duplicate = client.post("/admin/users", json={"role": "operator", "municipalityId": 42, "password": "another-pass"})
        assert duplicate.status_code == 409

        unbound = client.post("/admin/users", json={"role": "operator", "password": "another-pass"})
        assert unbound.status_code == 400

        client.post("/auth/logout")
        login(client, 2, "operator-2-pass")

    def test_reset_password_forces_change(self, client: TestClient, user_ids: dict[str, int]) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        response = client.post(f"/admin/users/{user_ids['operator_99']}/password", json={"newPassword": "reset-pass-99"})
        assert response.status_code == 200

        client.post("/auth/logout")
        body = client.post("/auth/login", json={"selector": 99, "password": "reset-pass-99"}).json()
        assert body["password_reset_required"] is True

    def test_deactivate_blocks_login(self, client: TestClient, user_ids: dict[str, int]) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        response = client.patch(f"/admin/users/{user_ids['operator_42']}", json={"isActive": False})
        assert response.status_code == 200
        assert response.json()["municipality_id"] == 42

        client.post("/auth/logout")
        assert client.post("/auth/login", json={"selector": 42, "password": OPERATOR_42_PASSWORD}).status_code == 401

    def test_cannot_delete_self(self, client: TestClient, user_ids: dict[str, int]) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        assert client.delete(f"/admin/users/{user_ids['admin']}").status_code == 400
        assert client.delete(f"/admin/users/{user_ids['governor']}").status_code == 200
        assert client.get(f"/admin/users/{user_ids['governor']}").status_code == 404

    def test_delete_municipality(self, client: TestClient) -> None:
        login(client, "admin", ADMIN_PASSWORD)
        assert client.delete("/admin/municipalities/42").status_code == 409
        assert client.delete("/admin/municipalities/8").status_code == 200
        assert client.delete("/admin/municipalities/8").status_code == 404
