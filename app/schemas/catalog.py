"""
app/schemas/catalog.py

Response schemas for municipalities and catalog listings.
"""

from __future__ import annotations

from pydantic import BaseModel


class MunicipalityResponse(BaseModel):
    id: int
    name: str
    head_name: str | None = None
    head_position: str | None = None

    model_config = {"from_attributes": True}


class IndicatorResponse(BaseModel):
    id: int
    code: str
    name: str
    unit: str | None = None
    form_code: str
    sort_order: int | None = None

    model_config = {"from_attributes": True}


class ServiceResponse(BaseModel):
    id: int
    code: str
    name: str
    unit: str | None = None
    category: str | None = None
    sort_order: int | None = None

    model_config = {"from_attributes": True}
