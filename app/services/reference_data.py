"""
app/services/reference_data.py

Loading of reference data: the municipality list and the traffic-safety
indicator catalog. Used by the command-line scripts under ``scripts/``.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.errors import BadRequestError
from app.services.import_schemas import TRAFFIC_SAFETY_COLUMNS, TRAFFIC_SAFETY_FORM
from db.database import Database
from db.models.values import ValueKindName, get_value_kind
from db.repositories.catalog_repository import CatalogRepository

logger = logging.getLogger(__name__)

# Accepted header spellings per target column, compared case-insensitively.
MUNICIPALITY_HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "name": (
        "муниципалитет",
        "муниципальное образование",
        "название",
        "наименование",
        "наименование мо",
        "mo",
    ),
    "head_name": (
        "глава",
        "руководитель",
        "фио",
        "фио главы",
        "председатель",
    ),
    "head_position": (
        "должность",
        "должность главы",
        "позиция",
    ),
}


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def resolve_municipality_columns(header: tuple[Any, ...]) -> dict[str, int | None]:
    """
    Map target fields to header positions.

    Raises ``BadRequestError`` when no municipality-name column is present.
    """

    lowered = [_clean(cell).lower() for cell in header]
    positions: dict[str, int | None] = {}
    for field, aliases in MUNICIPALITY_HEADER_ALIASES.items():
        positions[field] = next((i for i, cell in enumerate(lowered) if cell in aliases), None)

    if positions["name"] is None:
        raise BadRequestError(
            "No municipality name column found. Expected one of: "
            + ", ".join(MUNICIPALITY_HEADER_ALIASES["name"])
        )
    return positions


def read_municipality_rows(file_bytes: bytes, sheet_name: str | None = None) -> list[dict[str, str | None]]:
    """
    Parse a municipality list from an .xlsx workbook.

    Rows with an empty name are skipped.
    """

    try:
        workbook = load_workbook(BytesIO(file_bytes), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, ValueError, OSError) as exc:
        raise BadRequestError(f"The file is not a readable .xlsx workbook: {exc}") from None

    try:
        if sheet_name is not None:
            if sheet_name not in workbook.sheetnames:
                raise BadRequestError(f'Sheet "{sheet_name}" not found.')
            worksheet = workbook[sheet_name]
        elif workbook.worksheets:
            worksheet = workbook.worksheets[0]
        else:
            raise BadRequestError("The workbook contains no sheets.")
        rows = [tuple(row) for row in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()

    if not rows:
        raise BadRequestError("The sheet is empty.")

    positions = resolve_municipality_columns(rows[0])

    def cell(row: tuple[Any, ...], field: str) -> str | None:
        index = positions[field]
        if index is None or index >= len(row):
            return None
        return _clean(row[index]) or None

    parsed = []
    for row in rows[1:]:
        name = cell(row, "name")
        if not name:
            continue
        parsed.append(
            {
                "name": name,
                "head_name": cell(row, "head_name"),
                "head_position": cell(row, "head_position"),
            }
        )
    return parsed


def upsert_municipalities(database: Database, rows: list[dict[str, Any]]) -> int:
    with database.transaction() as session:
        written = CatalogRepository(session).upsert_municipalities(rows)
    logger.info("Upserted %d municipalities", written)
    return written


def traffic_safety_catalog_rows() -> list[dict[str, Any]]:
    return [
        {
            "code": code,
            "name": name,
            "unit": "ед.",
            "form_code": TRAFFIC_SAFETY_FORM,
            "sort_order": position,
        }
        for position, (code, name) in enumerate(TRAFFIC_SAFETY_COLUMNS, start=1)
    ]


def seed_traffic_safety_catalog(database: Database) -> int:
    """Insert or refresh the 42 traffic-safety indicator definitions."""
    kind = get_value_kind(ValueKindName.INDICATORS)
    with database.transaction() as session:
        written = CatalogRepository(session).upsert_catalog_items(kind, traffic_safety_catalog_rows())
    logger.info("Seeded %d traffic-safety indicators", written)
    return written
