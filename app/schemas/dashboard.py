"""
app/schemas/dashboard.py

Response schemas for dashboard endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ServicesKpi(BaseModel):
    total_services: float
    prev_total_services: float
    change_percent: float | None = None


class MonthlyTotal(BaseModel):
    month: int = Field(..., ge=1, le=12)
    total: float


class TopService(BaseModel):
    id: int
    name: str
    category: str | None = None
    total: float


class CategoryTotal(BaseModel):
    category: str
    total: float


class TopMunicipality(BaseModel):
    id: int
    name: str
    total: float


class ServicesDashboardResponse(BaseModel):
    kpi: ServicesKpi
    monthly_dynamics: list[MonthlyTotal]
    top_services: list[TopService] = Field(default_factory=list)
    categories: list[CategoryTotal] = Field(default_factory=list)
    top_municipalities: list[TopMunicipality] = Field(default_factory=list)


class MonthlyIndicatorPoint(BaseModel):
    month: int = Field(..., ge=1, le=12)
    total_value: float
    records: int = Field(..., ge=0)


class IndicatorDynamicsResponse(BaseModel):
    year: int
    by_month: list[MonthlyIndicatorPoint]


class RecentChange(BaseModel):
    municipality_id: int
    municipality_name: str
    item_id: int
    item_code: str
    item_name: str
    period_year: int
    period_month: int
    value: float
    updated_at: datetime | None = None


class PeriodResponse(BaseModel):
    year: int
    month: int
    label: str


class StatsResponse(BaseModel):
    municipalities: int = Field(..., ge=0)
    indicator_values: int = Field(0, ge=0)
    service_values: int = Field(0, ge=0)


class ComparisonRow(BaseModel):
    municipality_id: int
    municipality_name: str
    item_id: int
    item_code: str
    item_name: str
    period_year: int
    period_month: int
    value: float


class MunicipalityPeriodValues(BaseModel):
    municipality_id: int
    municipality_name: str
    values: dict[str, float] = Field(default_factory=dict)
