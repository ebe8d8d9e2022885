"""
app/api/routers/reports_router.py

Value submission, form pre-fill, spreadsheet import and Excel export.

Every handler builds an ``AccessScope`` and passes it to the access guard
before any storage call.

Responses
---------
save    JSON summary with saved count and dropped entries
values  JSON map item_id -> value
import  JSON import summary (imported, errors, skipped)
export  .xlsx attachment
"""

from __future__ import annotations

import logging
from io import BytesIO

from fastapi import APIRouter, Depends, Form, Query, UploadFile
from fastapi.responses import StreamingResponse

from app.api.dependencies import (
    get_export_service,
    get_identity,
    get_spreadsheet_importer,
    get_spreadsheet_upload,
    get_value_store,
    read_upload_limited,
)
from app.domain.identity import Identity
from app.domain.values import ValueEntry
from app.logging_utils import log_event
from app.schemas.reports import (
    DroppedEntryResponse,
    ExportRequest,
    ImportIssueResponse,
    ImportSummaryResponse,
    SaveValuesRequest,
    SaveValuesResponse,
    StoredValuesResponse,
)
from app.services.access_guard import AccessScope, enforce, require_scope
from app.services.export_service import ExportService
from app.services.import_schemas import ImportType
from app.services.spreadsheet_importer import ImportContext, SpreadsheetImporter
from app.services.value_store import ValueStore
from db.models.values import ValueKindName

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/save", response_model=SaveValuesResponse)
def save_values(
    payload: SaveValuesRequest,
    identity: Identity = Depends(get_identity),
    value_store: ValueStore = Depends(get_value_store),
) -> SaveValuesResponse:
    """
    Upsert one municipality's values for one month.
    """

    municipality_id = require_scope(payload.municipality_id)
    enforce(identity, AccessScope(municipality_id=municipality_id, write=True))

    result = value_store.upsert_values(
        payload.kind,
        municipality_id,
        payload.year,
        payload.month,
        [ValueEntry(item_id=item.item_id, value=item.value) for item in payload.values],
        catalog_group=payload.form_code,
    )
    log_event(
        logger,
        logging.INFO,
        "values_saved",
        user_id=identity.user_id,
        municipality_id=municipality_id,
        kind=payload.kind,
        period=f"{payload.year:04d}-{payload.month:02d}",
        saved=result.saved_count,
        dropped=len(result.dropped),
    )
    return SaveValuesResponse(
        saved_count=result.saved_count,
        dropped=[
            DroppedEntryResponse(index=entry.index, reason=entry.reason, item_id=entry.item_id)
            for entry in result.dropped
        ],
    )


@router.get("/values", response_model=StoredValuesResponse)
def read_values(
    municipality_id: int | None = Query(default=None, alias="municipalityId"),
    year: int = Query(...),
    month: int = Query(...),
    kind: str = Query(default=ValueKindName.INDICATORS),
    identity: Identity = Depends(get_identity),
    value_store: ValueStore = Depends(get_value_store),
) -> StoredValuesResponse:
    scoped_id = require_scope(municipality_id)
    enforce(identity, AccessScope(municipality_id=scoped_id))

    values = value_store.read_values(kind, scoped_id, year, month)
    return StoredValuesResponse(municipality_id=scoped_id, year=year, month=month, kind=kind, values=values)


@router.post("/import", response_model=ImportSummaryResponse)
def import_spreadsheet(
    file: UploadFile = Depends(get_spreadsheet_upload),
    import_type: str = Form(default=ImportType.TRAFFIC_SAFETY),
    year: int | None = Form(default=None),
    month: int | None = Form(default=None),
    municipality_id: int | None = Form(default=None),
    form_code: str | None = Form(default=None),
    identity: Identity = Depends(get_identity),
    importer: SpreadsheetImporter = Depends(get_spreadsheet_importer),
) -> ImportSummaryResponse:
    """
    Import one .xlsx file. Admin only.

    Row-level problems are reported in ``errors``/``skipped``; only an
    unreadable or structurally invalid file fails the request.
    """

    enforce(identity, AccessScope(municipality_id=municipality_id, write=True, elevated=True))

    try:
        content = read_upload_limited(file)
    finally:
        file.file.close()

    logger.info("Import started file=%s import_type=%s", file.filename, import_type)
    result = importer.import_file(
        content,
        ImportContext(
            import_type=import_type,
            year=year,
            month=month,
            municipality_id=municipality_id,
            catalog_group=form_code,
            requested_by=identity.user_id,
        ),
    )

    return ImportSummaryResponse(
        import_type=import_type,
        period=result.period.label(),
        year=result.period.year,
        month=result.period.month,
        imported=result.imported_count,
        dropped_values=result.dropped_values,
        errors=[ImportIssueResponse(row_number=i.row_number, label=i.label, message=i.message) for i in result.errors],
        skipped=[ImportIssueResponse(row_number=i.row_number, label=i.label, message=i.message) for i in result.skipped],
        message=f"Imported rows: {result.imported_count}",
    )


@router.post("/export")
def export_values(
    payload: ExportRequest,
    identity: Identity = Depends(get_identity),
    export_service: ExportService = Depends(get_export_service),
) -> StreamingResponse:
    """
    Download values as .xlsx. Aggregate exports (no municipality) are open
    to admins and the governor; operators export their own municipality.
    """

    enforce(identity, AccessScope(municipality_id=payload.municipality_id))

    export = export_service.export_values(
        kind=payload.kind,
        year=payload.year,
        month=payload.month,
        municipality_id=payload.municipality_id,
        detailed=payload.detailed,
    )
    return StreamingResponse(
        BytesIO(export.content),
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )
