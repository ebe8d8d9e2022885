"""
db/repositories/value_repository.py

Persistence layer for indicator and service values.

All methods are transaction-safe. The caller controls commit/rollback;
this repository never commits on its own.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.base import utc_now
from db.models.values import ValueKind
from db.repositories._dialect import dialect_insert

_DEFAULT_BATCH_SIZE = 500


class ValueRepository:
    """
    Repository for writing and reading one value kind (indicators or services).

    Upsert semantics: a row whose ``(municipality_id, item_id, period_year,
    period_month)`` already exists has ``value_numeric`` and ``updated_at``
    replaced rather than raising a duplicate-key error.
    """

    def __init__(self, session: Session, kind: ValueKind) -> None:
        self._session = session
        self._kind = kind

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def bulk_upsert(
        self,
        rows: Sequence[dict[str, Any]],
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Upsert value rows in chunks, in input order.

        Each element of ``rows`` must contain ``municipality_id``, ``item_id``,
        ``period_year``, ``period_month`` and ``value``. Duplicate keys within
        the call are collapsed in Python first; the last occurrence wins.

        Returns
        -------
        int
            Number of rows written (inserted + updated).
        """
        if not rows:
            return 0

        model = self._kind.value_model
        item_field = self._kind.item_field
        key_fields = ["municipality_id", item_field, "period_year", "period_month"]
        written_at = utc_now()
        size = max(1, batch_size)
        written = 0

        deduped = _deduplicate(rows)
        for start in range(0, len(deduped), size):
            chunk = deduped[start : start + size]
            payloads = [
                {
                    "municipality_id": r["municipality_id"],
                    item_field: r["item_id"],
                    "period_year": r["period_year"],
                    "period_month": r["period_month"],
                    "value_numeric": r["value"],
                    "updated_at": written_at,
                }
                for r in chunk
            ]
            stmt = dialect_insert(self._session, model).values(payloads)
            stmt = stmt.on_conflict_do_update(
                index_elements=key_fields,
                set_={
                    "value_numeric": stmt.excluded.value_numeric,
                    "updated_at": stmt.excluded.updated_at,
                },
            ).returning(model.id)
            written += len(self._session.scalars(stmt).all())

        return written

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_period_values(
        self,
        *,
        municipality_id: int,
        period_year: int,
        period_month: int,
    ) -> dict[int, Decimal]:
        """Return ``{item_id: value}`` for one municipality and month."""
        model = self._kind.value_model
        stmt = select(self._kind.item_column, model.value_numeric).where(
            model.municipality_id == municipality_id,
            model.period_year == period_year,
            model.period_month == period_month,
        )
        return dict(self._session.execute(stmt).all())

    def get_value(
        self,
        *,
        municipality_id: int,
        item_id: int,
        period_year: int,
        period_month: int,
    ) -> tuple[Decimal, datetime] | None:
        model = self._kind.value_model
        stmt = select(model.value_numeric, model.updated_at).where(
            model.municipality_id == municipality_id,
            self._kind.item_column == item_id,
            model.period_year == period_year,
            model.period_month == period_month,
        )
        row = self._session.execute(stmt).first()
        return (row[0], row[1]) if row is not None else None


# ---------------------------------------------------------------------------
# Module-level helpers (no business logic)
# ---------------------------------------------------------------------------


def _deduplicate(rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Last-write-wins deduplication keyed on the value key tuple, first-seen order kept."""
    seen: dict[tuple[int, int, int, int], dict[str, Any]] = {}
    for row in rows:
        key = (row["municipality_id"], row["item_id"], row["period_year"], row["period_month"])
        seen[key] = row
    return list(seen.values())
