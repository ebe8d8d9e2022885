"""
app/services/spreadsheet_importer.py

Spreadsheet import: parse an .xlsx file, match rows against stored names and
write the matched values through the value store.

Pipeline
--------
1. Open the workbook (cached formula results, first sheet only).
2. Resolve the reporting period from the sheet title or the request.
3. Check the header is wide enough for the layout.
4. Load name maps from the database (fresh for every call).
5. Fold every data row into an ``ImportResult``:
   blank entity      -> ignored
   summary label     -> skipped
   unknown entity    -> error naming the label
   matched entity    -> values parsed leniently (bad or empty cell = 0)
6. Write all matched rows in one transaction.

Only structural problems raise (``BadRequestError``). Row-level problems are
reported in the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_import_settings
from app.domain.imports import ImportIssue, ImportResult, MatchedRow, ReportingPeriod
from app.domain.values import ValueBatch, ValueEntry
from app.errors import BadRequestError, InternalError
from app.logging_utils import log_event
from app.services.access_guard import require_scope
from app.services.import_schemas import (
    DEFAULT_INDICATOR_FORM,
    TRAFFIC_SAFETY_FORM,
    EntityKind,
    ImportSchema,
    ImportType,
    get_import_schema,
    is_summary_label,
    normalize_label,
    normalize_municipality_name,
    parse_number,
    parse_period_from_title,
)
from app.services.value_store import ValueStore, validate_period
from db.database import Database
from db.models.values import get_value_kind
from db.repositories.catalog_repository import CatalogRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportContext:
    """
    Request parameters of one import.

    ``year``/``month``/``municipality_id`` are required by layouts that do
    not carry them in the file. ``catalog_group`` is the form code
    (indicators) or category (services) the rows are matched against.
    """

    import_type: str = ImportType.TRAFFIC_SAFETY
    year: int | None = None
    month: int | None = None
    municipality_id: int | None = None
    catalog_group: str | None = None
    requested_by: int | None = None


@dataclass(frozen=True)
class _Sheet:
    title: str
    header: tuple[Any, ...]
    rows: tuple[tuple[Any, ...], ...]


@dataclass(frozen=True)
class _NameMaps:
    entities: dict[str, int]
    codes: dict[str, int]


class SpreadsheetImporter:
    """
    Imports one spreadsheet per call. Holds no state between calls.
    """

    def __init__(self, database: Database, value_store: ValueStore | None = None) -> None:
        self._database = database
        self._value_store = value_store or ValueStore(database)

    def import_file(self, file_bytes: bytes, context: ImportContext) -> ImportResult:
        try:
            schema = get_import_schema(context.import_type)
        except ValueError as exc:
            raise BadRequestError(str(exc)) from None

        sheet = _read_first_sheet(file_bytes)
        period = self._resolve_period(schema, sheet, context)

        header_width = _row_width(sheet.header)
        if header_width < schema.min_columns:
            raise BadRequestError(
                f"Header has {header_width} columns; the {schema.import_type} layout "
                f"requires at least {schema.min_columns}."
            )
        if not sheet.rows:
            raise BadRequestError("The sheet contains no data rows.")

        group = _catalog_group(schema, context)
        if schema.entity_kind == EntityKind.CATALOG_ITEM:
            require_scope(context.municipality_id)

        maps = self._load_name_maps(schema, group)
        normalize = _normalizer_for(schema)
        summary_labels = get_import_settings().summary_labels

        result = ImportResult(period=period)
        for offset, row in enumerate(sheet.rows):
            result = _fold_row(
                result,
                row_number=offset + 2,
                row=row,
                schema=schema,
                maps=maps,
                normalize=normalize,
                summary_labels=summary_labels,
            )

        result = self._write(schema, result, maps, context, group)

        log_event(
            logger,
            logging.INFO,
            "import_completed",
            import_type=schema.import_type,
            period=period.label(),
            imported=result.imported_count,
            errors=len(result.errors),
            skipped=len(result.skipped),
            dropped_values=result.dropped_values,
            requested_by=context.requested_by,
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_period(schema: ImportSchema, sheet: _Sheet, context: ImportContext) -> ReportingPeriod:
        if schema.period_from_title:
            period = parse_period_from_title(sheet.title)
            if period is None:
                raise BadRequestError(
                    f'Cannot determine the period from sheet title "{sheet.title}". '
                    'Expected "<month> <YYYY>", e.g. "Август 2025".'
                )
            validate_period(period.year, period.month)
            return period

        if context.year is None or context.month is None:
            raise BadRequestError("Year and month are required for this import type.")
        year, month = validate_period(context.year, context.month)
        return ReportingPeriod(year=year, month=month)

    def _load_name_maps(self, schema: ImportSchema, group: str | None) -> _NameMaps:
        kind = get_value_kind(schema.value_kind)

        def load(session: Session) -> _NameMaps:
            catalog = CatalogRepository(session)
            if schema.entity_kind == EntityKind.MUNICIPALITY:
                return _NameMaps(
                    entities=catalog.municipality_name_map(normalize_municipality_name),
                    codes=catalog.item_code_map(kind, group=group),
                )
            return _NameMaps(
                entities=catalog.item_name_map(kind, normalize_label, group=group),
                codes={},
            )

        try:
            maps = self._database.run_read(load)
        except SQLAlchemyError as exc:
            logger.exception("Failed to load name maps for import_type=%s", schema.import_type)
            raise InternalError("Failed to load reference data.") from exc

        missing = [code for code in schema.value_codes if code not in maps.codes]
        if missing:
            logger.error(
                "Catalog is missing %d codes for import_type=%s: %s",
                len(missing),
                schema.import_type,
                ", ".join(missing[:5]),
            )
            raise InternalError(f"Indicator catalog for {group} is incomplete.")
        return maps

    def _write(
        self,
        schema: ImportSchema,
        result: ImportResult,
        maps: _NameMaps,
        context: ImportContext,
        group: str | None,
    ) -> ImportResult:
        if not result.matched:
            return result

        period = result.period
        if schema.entity_kind == EntityKind.MUNICIPALITY:
            batches = [
                ValueBatch(
                    municipality_id=row.entity_id,
                    period_year=period.year,
                    period_month=period.month,
                    entries=tuple(ValueEntry(maps.codes[code], value) for code, value in row.values),
                )
                for row in result.matched
            ]
        else:
            batches = [
                ValueBatch(
                    municipality_id=context.municipality_id,
                    period_year=period.year,
                    period_month=period.month,
                    entries=tuple(
                        ValueEntry(item_id, value)
                        for row in result.matched
                        for item_id, value in row.values
                    ),
                )
            ]

        outcomes = self._value_store.upsert_batches(schema.value_kind, batches, catalog_group=group)
        return result.with_saved(
            imported_count=len(result.matched),
            dropped_values=sum(len(outcome.dropped) for outcome in outcomes),
        )


# ---------------------------------------------------------------------------
# Row folding
# ---------------------------------------------------------------------------


def _fold_row(
    result: ImportResult,
    *,
    row_number: int,
    row: tuple[Any, ...],
    schema: ImportSchema,
    maps: _NameMaps,
    normalize,
    summary_labels: tuple[str, ...],
) -> ImportResult:
    raw_label = row[0] if row else None
    label = "" if raw_label is None else str(raw_label).strip()
    if not label:
        return result

    whole_label = schema.entity_kind != EntityKind.MUNICIPALITY
    if is_summary_label(label, summary_labels, whole_label=whole_label):
        return result.with_skipped(ImportIssue(row_number, label, "Summary row skipped."))

    entity_id = maps.entities.get(normalize(label))
    if entity_id is None:
        noun = "Municipality" if schema.entity_kind == EntityKind.MUNICIPALITY else "Catalog entry"
        return result.with_error(ImportIssue(row_number, label, f"{noun} not found: {label}"))

    first = next((m for m in result.matched if m.entity_id == entity_id), None)
    if first is not None:
        return result.with_skipped(
            ImportIssue(row_number, label, f"Duplicate of row {first.row_number}; the first row is kept.")
        )

    if schema.value_codes:
        values = tuple(
            (code, parse_number(_cell(row, column)))
            for column, code in enumerate(schema.value_codes, start=1)
        )
    else:
        values = ((entity_id, parse_number(_cell(row, 1))),)

    return result.with_match(MatchedRow(row_number=row_number, entity_id=entity_id, values=values))


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def _read_first_sheet(file_bytes: bytes) -> _Sheet:
    if not file_bytes:
        raise BadRequestError("The uploaded file is empty.")

    try:
        workbook = load_workbook(BytesIO(file_bytes), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, ValueError, OSError) as exc:
        logger.warning("Unreadable workbook: %s", exc)
        raise BadRequestError("The file is not a readable .xlsx workbook.") from None

    try:
        if not workbook.worksheets:
            raise BadRequestError("The workbook contains no sheets.")
        worksheet = workbook.worksheets[0]
        rows = [tuple(row) for row in worksheet.iter_rows(values_only=True)]
        title = worksheet.title
    finally:
        workbook.close()

    if not rows:
        raise BadRequestError("The sheet is empty.")
    return _Sheet(title=title, header=rows[0], rows=tuple(rows[1:]))


def _row_width(row: tuple[Any, ...]) -> int:
    """Position of the last non-empty cell, 1-based."""
    for index in range(len(row) - 1, -1, -1):
        cell = row[index]
        if cell is not None and str(cell).strip():
            return index + 1
    return 0


def _cell(row: tuple[Any, ...], index: int) -> Any:
    return row[index] if index < len(row) else None


def _normalizer_for(schema: ImportSchema):
    if schema.entity_kind == EntityKind.MUNICIPALITY:
        return normalize_municipality_name
    return normalize_label


def _catalog_group(schema: ImportSchema, context: ImportContext) -> str | None:
    if schema.import_type == ImportType.TRAFFIC_SAFETY:
        return TRAFFIC_SAFETY_FORM
    if schema.import_type == ImportType.INDICATORS:
        return context.catalog_group or DEFAULT_INDICATOR_FORM
    return context.catalog_group
