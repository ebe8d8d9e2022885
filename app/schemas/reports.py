"""
app/schemas/reports.py

Request and response schemas for value submission, import and export.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from db.models.values import ValueKindName


class ValueItem(BaseModel):
    """
    One submitted value. Both fields stay loosely typed so invalid entries
    are reported as dropped instead of failing the whole request.
    """

    item_id: Any = Field(None, validation_alias=AliasChoices("item_id", "itemId", "indicatorId", "serviceId", "id"))
    value: Any = None


class SaveValuesRequest(BaseModel):
    municipality_id: int | None = Field(None, validation_alias=AliasChoices("municipality_id", "municipalityId"))
    year: int
    month: int
    kind: str = ValueKindName.INDICATORS
    form_code: str | None = Field(None, validation_alias=AliasChoices("form_code", "formCode", "category"))
    values: list[ValueItem] = Field(default_factory=list)


class DroppedEntryResponse(BaseModel):
    index: int
    reason: str
    item_id: Any = None


class SaveValuesResponse(BaseModel):
    success: bool = True
    saved_count: int = Field(..., ge=0)
    dropped: list[DroppedEntryResponse] = Field(default_factory=list)


class StoredValuesResponse(BaseModel):
    municipality_id: int
    year: int
    month: int
    kind: str
    values: dict[int, float] = Field(default_factory=dict)


class ImportIssueResponse(BaseModel):
    row_number: int = Field(..., ge=1)
    label: str
    message: str


class ImportSummaryResponse(BaseModel):
    success: bool = True
    import_type: str
    period: str
    year: int
    month: int
    imported: int = Field(..., ge=0)
    dropped_values: int = Field(0, ge=0)
    errors: list[ImportIssueResponse] = Field(default_factory=list)
    skipped: list[ImportIssueResponse] = Field(default_factory=list)
    message: str


class ExportRequest(BaseModel):
    kind: str = ValueKindName.INDICATORS
    year: int
    month: int | None = None
    municipality_id: int | None = Field(None, validation_alias=AliasChoices("municipality_id", "municipalityId"))
    detailed: bool = False
