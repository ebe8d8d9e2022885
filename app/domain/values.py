"""
app/domain/values.py

Domain models used by the value store write path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ValueEntry:
    """
    One submitted value. ``value`` is raw input and may be invalid.
    """

    item_id: Any
    value: Any


@dataclass(frozen=True)
class DroppedEntry:
    """
    An entry excluded from a batch, identified by its input position.
    """

    index: int
    reason: str
    item_id: Any = None


@dataclass(frozen=True)
class ValueBatch:
    """
    Entries for one municipality and period.
    """

    municipality_id: int
    period_year: int
    period_month: int
    entries: tuple[ValueEntry, ...]


@dataclass(frozen=True)
class UpsertResult:
    """
    Outcome of one value store write.
    """

    saved_count: int
    dropped: list[DroppedEntry] = field(default_factory=list)
