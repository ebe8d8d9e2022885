"""
app/services/export_service.py

Excel export of stored values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import InternalError
from app.services.value_store import resolve_kind, validate_period
from db.database import Database
from db.models.municipality import Municipality

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

VALUES_HEADER = (
    "Муниципалитет",
    "Код",
    "Показатель",
    "Ед. изм.",
    "Год",
    "Месяц",
    "Значение",
    "Обновлено",
)
SUMMARY_HEADER = ("Муниципалитет", "Записей", "Сумма значений")


@dataclass(frozen=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


class ExportService:
    """
    Builds .xlsx workbooks from the value tables.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def export_values(
        self,
        *,
        kind: str,
        year: int,
        month: int | None = None,
        municipality_id: int | None = None,
        detailed: bool = False,
    ) -> ExportFilePayload:
        """
        Export one year (or one month) of values.

        The workbook always has a values sheet; ``detailed`` adds a
        per-municipality summary sheet.
        """

        value_kind = resolve_kind(kind)
        validate_period(year, month if month is not None else 1)

        model = value_kind.value_model
        catalog = value_kind.catalog_model

        def filters() -> list[Any]:
            clauses = [model.period_year == year]
            if month is not None:
                clauses.append(model.period_month == month)
            if municipality_id is not None:
                clauses.append(model.municipality_id == municipality_id)
            return clauses

        def load(session: Session) -> tuple[list[Any], list[Any]]:
            values_stmt = (
                select(
                    Municipality.name,
                    catalog.code,
                    catalog.name,
                    catalog.unit,
                    model.period_year,
                    model.period_month,
                    model.value_numeric,
                    model.updated_at,
                )
                .join(Municipality, Municipality.id == model.municipality_id)
                .join(catalog, catalog.id == value_kind.item_column)
                .where(*filters())
                .order_by(Municipality.name, model.period_month, catalog.sort_order, catalog.id)
            )
            values = list(session.execute(values_stmt).all())

            summary: list[Any] = []
            if detailed:
                summary_stmt = (
                    select(
                        Municipality.name,
                        func.count(model.id),
                        func.coalesce(func.sum(model.value_numeric), 0),
                    )
                    .join(Municipality, Municipality.id == model.municipality_id)
                    .where(*filters())
                    .group_by(Municipality.name)
                    .order_by(Municipality.name)
                )
                summary = list(session.execute(summary_stmt).all())
            return values, summary

        try:
            values, summary = self._database.run_read(load)
        except SQLAlchemyError as exc:
            logger.exception("Export query failed kind=%s year=%s", kind, year)
            raise InternalError("Failed to export values.") from exc

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Значения"
        _append_header(sheet, VALUES_HEADER)
        for name, code, item_name, unit, period_year, period_month, value, updated_at in values:
            sheet.append(
                [
                    name,
                    code,
                    item_name,
                    unit or "",
                    period_year,
                    period_month,
                    float(value),
                    updated_at.replace(tzinfo=None) if updated_at is not None else None,
                ]
            )
        _fit_columns(sheet, (32, 28, 60, 12, 8, 8, 14, 20))

        if detailed:
            summary_sheet = workbook.create_sheet("Сводка")
            _append_header(summary_sheet, SUMMARY_HEADER)
            for name, records, total in summary:
                summary_sheet.append([name, int(records), float(total)])
            _fit_columns(summary_sheet, (32, 12, 18))

        output = BytesIO()
        workbook.save(output)

        period = f"{year}" if month is None else f"{year}-{month:02d}"
        logger.info("Exported %d %s rows for %s", len(values), value_kind.name, period)
        return ExportFilePayload(
            media_type=XLSX_MEDIA_TYPE,
            filename=f"{value_kind.name}_{period}.xlsx",
            content=output.getvalue(),
        )


def _append_header(sheet, header: tuple[str, ...]) -> None:
    sheet.append(list(header))
    for cell in sheet[1]:
        cell.font = Font(bold=True)


def _fit_columns(sheet, widths: tuple[int, ...]) -> None:
    for index, width in enumerate(widths, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width
