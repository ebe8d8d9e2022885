"""
app/api/routers/dashboard_router.py

Dashboard aggregation endpoints.

An operator without an explicit ``municipalityId`` is scoped to their own
municipality; admins and the governor default to all municipalities.
``/compare`` and ``/period-values`` span every municipality and are
closed to operators.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_dashboard_service, get_identity
from app.domain.identity import Identity, Operator
from app.schemas.dashboard import (
    ComparisonRow,
    IndicatorDynamicsResponse,
    MunicipalityPeriodValues,
    PeriodResponse,
    RecentChange,
    ServicesDashboardResponse,
    StatsResponse,
)
from app.services.access_guard import AccessScope, enforce
from app.services.dashboard_service import DashboardService
from app.services.import_schemas import TRAFFIC_SAFETY_FORM
from app.services.value_store import parse_period_label, resolve_kind, validate_period
from db.models.values import ValueKindName

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _read_scope(identity: Identity, municipality_id: int | None) -> int | None:
    if municipality_id is None and isinstance(identity, Operator):
        municipality_id = identity.municipality_id
    enforce(identity, AccessScope(municipality_id=municipality_id))
    return municipality_id


@router.get("/data", response_model=ServicesDashboardResponse)
def services_dashboard(
    year: int = Query(...),
    month: int | None = Query(default=None),
    municipality_id: int | None = Query(default=None, alias="municipalityId"),
    identity: Identity = Depends(get_identity),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> ServicesDashboardResponse:
    validate_period(year, month if month is not None else 1)
    scoped_id = _read_scope(identity, municipality_id)
    return ServicesDashboardResponse.model_validate(
        dashboard_service.services_dashboard(year, month=month, municipality_id=scoped_id)
    )


@router.get("/indicators", response_model=IndicatorDynamicsResponse)
def indicator_dynamics(
    year: int | None = Query(default=None),
    form_code: str | None = Query(default=None, alias="formCode"),
    municipality_id: int | None = Query(default=None, alias="municipalityId"),
    identity: Identity = Depends(get_identity),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> IndicatorDynamicsResponse:
    resolved_year = year if year is not None else date.today().year
    validate_period(resolved_year, 1)
    scoped_id = _read_scope(identity, municipality_id)
    return IndicatorDynamicsResponse.model_validate(
        dashboard_service.indicator_dynamics(resolved_year, form_code=form_code, municipality_id=scoped_id)
    )


@router.get("/recent", response_model=list[RecentChange])
def recent_changes(
    limit: int | None = Query(default=None, ge=1),
    kind: str = Query(default=ValueKindName.INDICATORS),
    municipality_id: int | None = Query(default=None, alias="municipalityId"),
    identity: Identity = Depends(get_identity),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> list[RecentChange]:
    resolve_kind(kind)
    scoped_id = _read_scope(identity, municipality_id)
    return [
        RecentChange.model_validate(row)
        for row in dashboard_service.recent_changes(limit, municipality_id=scoped_id, kind=kind)
    ]


@router.get("/periods", response_model=list[PeriodResponse])
def available_periods(
    kind: str = Query(default=ValueKindName.INDICATORS),
    municipality_id: int | None = Query(default=None, alias="municipalityId"),
    identity: Identity = Depends(get_identity),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> list[PeriodResponse]:
    resolve_kind(kind)
    scoped_id = _read_scope(identity, municipality_id)
    return [
        PeriodResponse.model_validate(row)
        for row in dashboard_service.available_periods(kind, municipality_id=scoped_id)
    ]


@router.get("/stats", response_model=StatsResponse)
def stats(
    identity: Identity = Depends(get_identity),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> StatsResponse:
    enforce(identity, AccessScope())
    return StatsResponse.model_validate(dashboard_service.stats())


@router.get("/compare", response_model=list[ComparisonRow])
def compare(
    months: list[str] = Query(..., description='Months as "YYYY-MM"; repeat the parameter for several'),
    item_ids: list[int] | None = Query(default=None, alias="itemIds"),
    kind: str = Query(default=ValueKindName.INDICATORS),
    identity: Identity = Depends(get_identity),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> list[ComparisonRow]:
    resolve_kind(kind)
    periods = [parse_period_label(label) for label in months]
    enforce(identity, AccessScope())
    return [
        ComparisonRow.model_validate(row)
        for row in dashboard_service.compare(periods, item_ids=item_ids, kind=kind)
    ]


@router.get("/period-values", response_model=list[MunicipalityPeriodValues])
def period_values(
    period: str = Query(..., description='"YYYY-MM"'),
    group: str | None = Query(default=TRAFFIC_SAFETY_FORM, description="Form code or service category"),
    kind: str = Query(default=ValueKindName.INDICATORS),
    identity: Identity = Depends(get_identity),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> list[MunicipalityPeriodValues]:
    resolve_kind(kind)
    year, month = parse_period_label(period)
    enforce(identity, AccessScope())
    return [
        MunicipalityPeriodValues.model_validate(row)
        for row in dashboard_service.period_values(year, month, catalog_group=group, kind=kind)
    ]
