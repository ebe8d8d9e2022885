"""
app/domain/imports.py

Domain models used by the spreadsheet import flow.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class ReportingPeriod:
    year: int
    month: int

    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class ImportIssue:
    """
    One row-level diagnostic. ``label`` is the raw entity cell text.
    """

    row_number: int
    label: str
    message: str


@dataclass(frozen=True)
class MatchedRow:
    """
    A row resolved to an entity id with its parsed numeric cells.

    ``values`` maps a catalog code (or the matched item id for single-value
    schemas) to the parsed number.
    """

    row_number: int
    entity_id: int
    values: tuple[tuple[str | int, float], ...]


@dataclass(frozen=True)
class ImportResult:
    """
    Immutable end-of-run import summary.

    Built by folding per-row outcomes with the ``with_*`` methods, each of
    which returns a new value.
    """

    period: ReportingPeriod
    imported_count: int = 0
    errors: tuple[ImportIssue, ...] = ()
    skipped: tuple[ImportIssue, ...] = ()
    matched: tuple[MatchedRow, ...] = ()
    dropped_values: int = 0

    def with_error(self, issue: ImportIssue) -> "ImportResult":
        return replace(self, errors=self.errors + (issue,))

    def with_skipped(self, issue: ImportIssue) -> "ImportResult":
        return replace(self, skipped=self.skipped + (issue,))

    def with_match(self, row: MatchedRow) -> "ImportResult":
        return replace(self, matched=self.matched + (row,))

    def with_saved(self, *, imported_count: int, dropped_values: int) -> "ImportResult":
        return replace(self, imported_count=imported_count, dropped_values=dropped_values)
