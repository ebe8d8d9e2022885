"""
app/services/dashboard_service.py

Read-side aggregation queries for the dashboards.

Every method returns plain JSON-ready structures. When a value table is
missing (per the startup table cache) or the database fails with an
operational error, the method returns a well-formed empty payload instead of
raising: monthly series stay 12 elements long and lists are empty.

Authorization is the caller's job; ``municipality_id=None`` means
"all municipalities".
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from app.config import get_dashboard_settings
from db.database import Database
from db.models.catalog import ServiceDefinition
from db.models.municipality import Municipality
from db.models.values import VALUE_KINDS, ServiceValue, ValueKindName, get_value_kind
from db.repositories.catalog_repository import CatalogRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNCATEGORIZED_LABEL = "Без категории"


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def _number(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


def zero_filled_months(
    rows: Iterable[Mapping[str, Any]],
    fields: Iterable[str],
) -> list[dict[str, Any]]:
    """
    Expand per-month aggregate rows into a 12-element series.

    ``rows`` carry a ``month`` key plus the aggregate ``fields``; months
    without a row get 0 for every field.
    """

    field_names = tuple(fields)
    by_month = {int(row["month"]): row for row in rows}
    series = []
    for month in range(1, 13):
        found = by_month.get(month)
        point: dict[str, Any] = {"month": month}
        for name in field_names:
            point[name] = _number(found[name]) if found is not None else 0
        series.append(point)
    return series


def change_percent(current: float, previous: float) -> float | None:
    if previous <= 0:
        return None
    return round((current - previous) / previous * 100, 1)


def empty_services_dashboard() -> dict[str, Any]:
    return {
        "kpi": {
            "total_services": 0,
            "prev_total_services": 0,
            "change_percent": None,
        },
        "monthly_dynamics": zero_filled_months([], ("total",)),
        "top_services": [],
        "categories": [],
        "top_municipalities": [],
    }


def empty_indicator_dynamics(year: int) -> dict[str, Any]:
    return {"year": year, "by_month": zero_filled_months([], ("total_value", "records"))}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class DashboardService:
    """
    Aggregations over indicator and service values.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def _degrading_read(
        self,
        name: str,
        operation: Callable[[Session], T],
        fallback: Callable[[], T],
        required_tables: Iterable[str] = (),
    ) -> T:
        missing = [table for table in required_tables if not self._database.has_table(table)]
        if missing:
            logger.warning("Dashboard query %s skipped, missing tables: %s", name, ", ".join(missing))
            return fallback()
        try:
            return self._database.run_read(operation)
        except (OperationalError, ProgrammingError) as exc:
            logger.warning("Dashboard query %s degraded to empty result: %s", name, exc)
            return fallback()

    # ------------------------------------------------------------------
    # Services dashboard
    # ------------------------------------------------------------------

    def services_dashboard(
        self,
        year: int,
        month: int | None = None,
        municipality_id: int | None = None,
    ) -> dict[str, Any]:
        """
        KPI total with year-over-year change, monthly dynamics, top services,
        category breakdown and top municipalities.
        """

        top_n = get_dashboard_settings().top_n

        def query(session: Session) -> dict[str, Any]:
            def filters(period_year: int) -> list[Any]:
                clauses = [ServiceValue.period_year == period_year]
                if month is not None:
                    clauses.append(ServiceValue.period_month == month)
                if municipality_id is not None:
                    clauses.append(ServiceValue.municipality_id == municipality_id)
                return clauses

            total_stmt = select(func.coalesce(func.sum(ServiceValue.value_numeric), 0))
            total = _number(session.scalar(total_stmt.where(*filters(year))))
            previous = _number(session.scalar(total_stmt.where(*filters(year - 1))))

            monthly_stmt = (
                select(
                    ServiceValue.period_month.label("month"),
                    func.coalesce(func.sum(ServiceValue.value_numeric), 0).label("total"),
                )
                .where(ServiceValue.period_year == year)
                .group_by(ServiceValue.period_month)
            )
            if municipality_id is not None:
                monthly_stmt = monthly_stmt.where(ServiceValue.municipality_id == municipality_id)
            monthly = session.execute(monthly_stmt).mappings().all()

            service_total = func.coalesce(func.sum(ServiceValue.value_numeric), 0).label("total")
            top_services_stmt = (
                select(ServiceDefinition.id, ServiceDefinition.name, ServiceDefinition.category, service_total)
                .select_from(ServiceDefinition)
                .join(ServiceValue, ServiceValue.service_id == ServiceDefinition.id)
                .where(*filters(year))
                .group_by(ServiceDefinition.id, ServiceDefinition.name, ServiceDefinition.category)
                .order_by(service_total.desc(), ServiceDefinition.id)
                .limit(top_n)
            )
            top_services = session.execute(top_services_stmt).mappings().all()

            category_label = func.coalesce(ServiceDefinition.category, UNCATEGORIZED_LABEL).label("category")
            category_total = func.coalesce(func.sum(ServiceValue.value_numeric), 0).label("total")
            categories_stmt = (
                select(category_label, category_total)
                .select_from(ServiceDefinition)
                .join(ServiceValue, ServiceValue.service_id == ServiceDefinition.id)
                .where(*filters(year))
                .group_by(category_label)
                .order_by(category_total.desc())
            )
            categories = session.execute(categories_stmt).mappings().all()

            join_clauses = [
                ServiceValue.municipality_id == Municipality.id,
                ServiceValue.period_year == year,
            ]
            if month is not None:
                join_clauses.append(ServiceValue.period_month == month)
            municipality_total = func.coalesce(func.sum(ServiceValue.value_numeric), 0).label("total")
            top_municipalities_stmt = (
                select(Municipality.id, Municipality.name, municipality_total)
                .outerjoin(ServiceValue, and_(*join_clauses))
                .group_by(Municipality.id, Municipality.name)
                .order_by(municipality_total.desc(), Municipality.name)
                .limit(top_n)
            )
            if municipality_id is not None:
                top_municipalities_stmt = top_municipalities_stmt.where(Municipality.id == municipality_id)
            top_municipalities = session.execute(top_municipalities_stmt).mappings().all()

            return {
                "kpi": {
                    "total_services": total,
                    "prev_total_services": previous,
                    "change_percent": change_percent(total, previous),
                },
                "monthly_dynamics": zero_filled_months(monthly, ("total",)),
                "top_services": [
                    {
                        "id": row["id"],
                        "name": row["name"],
                        "category": row["category"],
                        "total": _number(row["total"]),
                    }
                    for row in top_services
                ],
                "categories": [
                    {"category": row["category"], "total": _number(row["total"])} for row in categories
                ],
                "top_municipalities": [
                    {"id": row["id"], "name": row["name"], "total": _number(row["total"])}
                    for row in top_municipalities
                ],
            }

        return self._degrading_read(
            "services_dashboard",
            query,
            empty_services_dashboard,
            required_tables=(ServiceValue.__tablename__, ServiceDefinition.__tablename__),
        )

    # ------------------------------------------------------------------
    # Indicator dynamics
    # ------------------------------------------------------------------

    def indicator_dynamics(
        self,
        year: int,
        form_code: str | None = None,
        municipality_id: int | None = None,
    ) -> dict[str, Any]:
        """Per-month sum and row count of indicator values for one year."""

        kind = VALUE_KINDS[ValueKindName.INDICATORS]
        model = kind.value_model

        def query(session: Session) -> dict[str, Any]:
            stmt = (
                select(
                    model.period_month.label("month"),
                    func.coalesce(func.sum(model.value_numeric), 0).label("total_value"),
                    func.count().label("records"),
                )
                .where(model.period_year == year)
                .group_by(model.period_month)
            )
            if municipality_id is not None:
                stmt = stmt.where(model.municipality_id == municipality_id)
            if form_code is not None:
                stmt = stmt.join(kind.catalog_model, kind.catalog_model.id == kind.item_column).where(
                    kind.group_column == form_code
                )
            rows = session.execute(stmt).mappings().all()
            series = zero_filled_months(rows, ("total_value", "records"))
            for point in series:
                point["records"] = int(point["records"])
            return {"year": year, "by_month": series}

        return self._degrading_read(
            "indicator_dynamics",
            query,
            lambda: empty_indicator_dynamics(year),
            required_tables=(kind.table_name,),
        )

    # ------------------------------------------------------------------
    # Recent changes
    # ------------------------------------------------------------------

    def recent_changes(
        self,
        limit: int | None = None,
        municipality_id: int | None = None,
        kind: str = ValueKindName.INDICATORS,
    ) -> list[dict[str, Any]]:
        """
        Latest writes ordered by ``updated_at`` descending.

        ``limit`` is clamped to ``[1, DASHBOARD_RECENT_LIMIT_MAX]``.
        """

        settings = get_dashboard_settings()
        requested = settings.recent_limit_default if limit is None else limit
        effective_limit = max(1, min(requested, settings.recent_limit_max))
        value_kind = get_value_kind(kind)
        model = value_kind.value_model
        catalog = value_kind.catalog_model

        def query(session: Session) -> list[dict[str, Any]]:
            stmt = (
                select(
                    model.municipality_id,
                    Municipality.name.label("municipality_name"),
                    value_kind.item_column.label("item_id"),
                    catalog.code.label("item_code"),
                    catalog.name.label("item_name"),
                    model.period_year,
                    model.period_month,
                    model.value_numeric,
                    model.updated_at,
                )
                .join(Municipality, Municipality.id == model.municipality_id)
                .join(catalog, catalog.id == value_kind.item_column)
                .order_by(model.updated_at.desc(), model.id.desc())
                .limit(effective_limit)
            )
            if municipality_id is not None:
                stmt = stmt.where(model.municipality_id == municipality_id)
            return [
                {
                    "municipality_id": row["municipality_id"],
                    "municipality_name": row["municipality_name"],
                    "item_id": row["item_id"],
                    "item_code": row["item_code"],
                    "item_name": row["item_name"],
                    "period_year": row["period_year"],
                    "period_month": row["period_month"],
                    "value": _number(row["value_numeric"]),
                    "updated_at": row["updated_at"],
                }
                for row in session.execute(stmt).mappings().all()
            ]

        return self._degrading_read(
            "recent_changes",
            query,
            list,
            required_tables=(value_kind.table_name, catalog.__tablename__),
        )

    # ------------------------------------------------------------------
    # Cross-municipality comparisons
    # ------------------------------------------------------------------

    def compare(
        self,
        periods: Sequence[tuple[int, int]],
        item_ids: Sequence[int] | None = None,
        kind: str = ValueKindName.INDICATORS,
    ) -> list[dict[str, Any]]:
        """
        Values of every municipality for the given months.

        ``item_ids`` limits the comparison to some catalog entries. Rows are
        ordered by municipality name, catalog order and period.
        """

        value_kind = get_value_kind(kind)
        model = value_kind.value_model
        catalog = value_kind.catalog_model
        wanted = sorted(set(periods))
        if not wanted:
            return []

        def query(session: Session) -> list[dict[str, Any]]:
            period_filter = or_(
                *(and_(model.period_year == year, model.period_month == month) for year, month in wanted)
            )
            stmt = (
                select(
                    model.municipality_id,
                    Municipality.name.label("municipality_name"),
                    value_kind.item_column.label("item_id"),
                    catalog.code.label("item_code"),
                    catalog.name.label("item_name"),
                    model.period_year,
                    model.period_month,
                    model.value_numeric,
                )
                .join(Municipality, Municipality.id == model.municipality_id)
                .join(catalog, catalog.id == value_kind.item_column)
                .where(period_filter)
                .order_by(
                    Municipality.name,
                    catalog.sort_order.is_(None),
                    catalog.sort_order,
                    catalog.id,
                    model.period_year,
                    model.period_month,
                )
            )
            if item_ids is not None:
                stmt = stmt.where(value_kind.item_column.in_(list(item_ids)))
            return [
                {
                    "municipality_id": row["municipality_id"],
                    "municipality_name": row["municipality_name"],
                    "item_id": row["item_id"],
                    "item_code": row["item_code"],
                    "item_name": row["item_name"],
                    "period_year": row["period_year"],
                    "period_month": row["period_month"],
                    "value": _number(row["value_numeric"]),
                }
                for row in session.execute(stmt).mappings().all()
            ]

        return self._degrading_read(
            "compare",
            query,
            list,
            required_tables=(value_kind.table_name, catalog.__tablename__),
        )

    def period_values(
        self,
        year: int,
        month: int,
        catalog_group: str | None = None,
        kind: str = ValueKindName.INDICATORS,
    ) -> list[dict[str, Any]]:
        """
        One month of values for every municipality that reported it.

        Each row is ``{"municipality_id", "municipality_name", "values"}``
        where ``values`` maps catalog code to value. ``catalog_group`` keeps
        one form (indicators) or category (services).
        """

        value_kind = get_value_kind(kind)
        model = value_kind.value_model
        catalog = value_kind.catalog_model

        def query(session: Session) -> list[dict[str, Any]]:
            stmt = (
                select(
                    model.municipality_id,
                    Municipality.name.label("municipality_name"),
                    catalog.code.label("item_code"),
                    model.value_numeric,
                )
                .join(Municipality, Municipality.id == model.municipality_id)
                .join(catalog, catalog.id == value_kind.item_column)
                .where(model.period_year == year, model.period_month == month)
                .order_by(Municipality.name, catalog.sort_order.is_(None), catalog.sort_order, catalog.id)
            )
            if catalog_group is not None:
                stmt = stmt.where(value_kind.group_column == catalog_group)

            by_municipality: dict[int, dict[str, Any]] = {}
            for row in session.execute(stmt).mappings().all():
                entry = by_municipality.setdefault(
                    row["municipality_id"],
                    {
                        "municipality_id": row["municipality_id"],
                        "municipality_name": row["municipality_name"],
                        "values": {},
                    },
                )
                entry["values"][row["item_code"]] = _number(row["value_numeric"])
            return list(by_municipality.values())

        return self._degrading_read(
            "period_values",
            query,
            list,
            required_tables=(value_kind.table_name, catalog.__tablename__),
        )

    # ------------------------------------------------------------------
    # Periods and counters
    # ------------------------------------------------------------------

    def available_periods(
        self,
        kind: str = ValueKindName.INDICATORS,
        municipality_id: int | None = None,
    ) -> list[dict[str, Any]]:
        """Distinct ``(year, month)`` pairs with data, newest first."""

        value_kind = get_value_kind(kind)
        model = value_kind.value_model

        def query(session: Session) -> list[dict[str, Any]]:
            stmt = (
                select(model.period_year, model.period_month)
                .distinct()
                .order_by(model.period_year.desc(), model.period_month.desc())
            )
            if municipality_id is not None:
                stmt = stmt.where(model.municipality_id == municipality_id)
            return [
                {"year": year, "month": month, "label": f"{year:04d}-{month:02d}"}
                for year, month in session.execute(stmt).all()
            ]

        return self._degrading_read(
            "available_periods",
            query,
            list,
            required_tables=(value_kind.table_name,),
        )

    def stats(self) -> dict[str, int]:
        """Municipality count plus row counts per value table."""

        present = {
            name: self._database.has_table(kind.table_name) for name, kind in VALUE_KINDS.items()
        }

        def query(session: Session) -> dict[str, int]:
            counts = {"municipalities": CatalogRepository(session).count_municipalities()}
            for name, kind in VALUE_KINDS.items():
                if not present[name]:
                    counts[kind.table_name] = 0
                    continue
                counts[kind.table_name] = int(
                    session.scalar(select(func.count()).select_from(kind.value_model)) or 0
                )
            return counts

        def fallback() -> dict[str, int]:
            return {"municipalities": 0, **{kind.table_name: 0 for kind in VALUE_KINDS.values()}}

        return self._degrading_read("stats", query, fallback)
