"""
app/services/value_store.py

Validated, atomic writes of monthly values.

Write pipeline
--------------
1. Resolve the value kind (indicators or services).
2. Validate municipality, year and month. Any failure rejects the whole call.
3. Drop entries whose item is not in the active catalog or whose value is
   not numeric. Each drop is reported by input index.
4. Upsert the surviving entries. Duplicate item ids keep the last occurrence.

Steps 2 to 4 run in one transaction on the primary database.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.values import DroppedEntry, UpsertResult, ValueBatch, ValueEntry
from app.errors import BadRequestError, InternalError, NotFoundError
from db.database import Database
from db.models.values import ValueKind, get_value_kind
from db.repositories.catalog_repository import CatalogRepository
from db.repositories.value_repository import ValueRepository

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100

_PERIOD_LABEL_RE = re.compile(r"(\d{4})-(\d{1,2})")


class DropReason:
    UNKNOWN_ITEM = "unknown_item"
    INVALID_ITEM_ID = "invalid_item_id"
    MISSING_VALUE = "missing_value"
    NOT_NUMERIC = "not_numeric"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def resolve_kind(kind: str) -> ValueKind:
    try:
        return get_value_kind(kind)
    except ValueError as exc:
        raise BadRequestError(str(exc)) from None


def validate_period(year: Any, month: Any) -> tuple[int, int]:
    """
    Return ``(year, month)`` as ints or raise ``BadRequestError``.
    """

    if isinstance(year, bool) or not isinstance(year, int):
        raise BadRequestError("Year must be an integer.")
    if isinstance(month, bool) or not isinstance(month, int):
        raise BadRequestError("Month must be an integer.")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise BadRequestError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}.")
    if not 1 <= month <= 12:
        raise BadRequestError("Month must be between 1 and 12.")
    return year, month


def parse_period_label(label: str) -> tuple[int, int]:
    """Parse a ``"YYYY-MM"`` label into a validated ``(year, month)`` pair."""
    match = _PERIOD_LABEL_RE.fullmatch(label.strip()) if label else None
    if match is None:
        raise BadRequestError(f"Period must look like YYYY-MM: {label!r}")
    return validate_period(int(match.group(1)), int(match.group(2)))


def _coerce_item_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    return None


def coerce_value(raw: Any) -> Decimal | None:
    """
    Convert a submitted value to Decimal.

    Accepts ints, finite floats, Decimals and numeric strings (comma decimal
    separator allowed). Returns None for anything else.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float) and not math.isfinite(raw):
        return None
    if isinstance(raw, (int, float, Decimal)):
        text = str(raw)
    elif isinstance(raw, str):
        text = raw.strip().replace("\u00a0", "").replace(" ", "").replace(",", ".")
        if not text:
            return None
    else:
        return None

    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def partition_entries(
    entries: Sequence[ValueEntry],
    allowed_item_ids: set[int],
) -> tuple[list[tuple[int, Decimal]], list[DroppedEntry]]:
    """
    Split raw entries into accepted ``(item_id, value)`` pairs and drops.

    Accepted pairs keep input order; duplicates are left for the repository
    to collapse (last occurrence wins).
    """

    accepted: list[tuple[int, Decimal]] = []
    dropped: list[DroppedEntry] = []

    for index, entry in enumerate(entries):
        item_id = _coerce_item_id(entry.item_id)
        if item_id is None:
            dropped.append(DroppedEntry(index, DropReason.INVALID_ITEM_ID, entry.item_id))
            continue
        if item_id not in allowed_item_ids:
            dropped.append(DroppedEntry(index, DropReason.UNKNOWN_ITEM, item_id))
            continue
        if entry.value is None:
            dropped.append(DroppedEntry(index, DropReason.MISSING_VALUE, item_id))
            continue
        value = coerce_value(entry.value)
        if value is None:
            dropped.append(DroppedEntry(index, DropReason.NOT_NUMERIC, item_id))
            continue
        accepted.append((item_id, value))

    return accepted, dropped


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ValueStore:
    """
    Write and read access to indicator and service values.

    Authorization is not checked here; callers run the access guard first.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def upsert_values(
        self,
        kind: str,
        municipality_id: int,
        year: int,
        month: int,
        entries: Iterable[ValueEntry],
        *,
        catalog_group: str | None = None,
    ) -> UpsertResult:
        """
        Validate and upsert one municipality/period batch atomically.

        Parameters
        ----------
        catalog_group:
            Restricts accepted items to one ``form_code`` (indicators) or
            ``category`` (services).

        Raises
        ------
        BadRequestError
            Unknown kind, year outside [2000, 2100] or month outside [1, 12].
        NotFoundError
            The municipality does not exist.
        InternalError
            Storage failure. Nothing from the batch is persisted.
        """

        batch = ValueBatch(
            municipality_id=municipality_id,
            period_year=year,
            period_month=month,
            entries=tuple(entries),
        )
        results = self.upsert_batches(kind, [batch], catalog_group=catalog_group)
        return results[0]

    def upsert_batches(
        self,
        kind: str,
        batches: Sequence[ValueBatch],
        *,
        catalog_group: str | None = None,
    ) -> list[UpsertResult]:
        """
        Write several batches in a single transaction.

        Either every batch is persisted or none is. Returns one result per
        batch, in input order.
        """

        value_kind = resolve_kind(kind)
        for batch in batches:
            validate_period(batch.period_year, batch.period_month)

        try:
            with self._database.transaction() as session:
                return self._write(session, value_kind, batches, catalog_group)
        except SQLAlchemyError as exc:
            logger.exception(
                "Value upsert failed kind=%s batches=%d",
                value_kind.name,
                len(batches),
            )
            raise InternalError("Failed to save values.") from exc

    def read_values(
        self,
        kind: str,
        municipality_id: int,
        year: int,
        month: int,
    ) -> dict[int, float]:
        """
        Return ``{item_id: value}`` stored for one municipality and month.

        Reads from the primary so a form reloaded right after saving shows
        the saved values.
        """

        value_kind = resolve_kind(kind)
        validate_period(year, month)

        try:
            with self._database.transaction() as session:
                catalog = CatalogRepository(session)
                if not catalog.municipality_exists(municipality_id):
                    raise NotFoundError(f"Municipality {municipality_id} not found.")
                stored = ValueRepository(session, value_kind).get_period_values(
                    municipality_id=municipality_id,
                    period_year=year,
                    period_month=month,
                )
        except SQLAlchemyError as exc:
            logger.exception("Value read failed kind=%s municipality_id=%s", kind, municipality_id)
            raise InternalError("Failed to load values.") from exc

        return {item_id: float(value) for item_id, value in stored.items()}

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _write(
        session: Session,
        value_kind: ValueKind,
        batches: Sequence[ValueBatch],
        catalog_group: str | None,
    ) -> list[UpsertResult]:
        catalog = CatalogRepository(session)
        repository = ValueRepository(session, value_kind)
        allowed_item_ids = catalog.active_item_ids(value_kind, group=catalog_group)
        known_municipalities: set[int] = set()

        results: list[UpsertResult] = []
        for batch in batches:
            if batch.municipality_id not in known_municipalities:
                if not catalog.municipality_exists(batch.municipality_id):
                    raise NotFoundError(f"Municipality {batch.municipality_id} not found.")
                known_municipalities.add(batch.municipality_id)

            accepted, dropped = partition_entries(batch.entries, allowed_item_ids)
            rows = [
                {
                    "municipality_id": batch.municipality_id,
                    "item_id": item_id,
                    "period_year": batch.period_year,
                    "period_month": batch.period_month,
                    "value": value,
                }
                for item_id, value in accepted
            ]
            saved_count = repository.bulk_upsert(rows)
            results.append(UpsertResult(saved_count=saved_count, dropped=dropped))

            if dropped:
                logger.info(
                    "Dropped %d of %d entries kind=%s municipality_id=%s period=%04d-%02d",
                    len(dropped),
                    len(batch.entries),
                    value_kind.name,
                    batch.municipality_id,
                    batch.period_year,
                    batch.period_month,
                )

        return results
