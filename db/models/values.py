"""
db/models/values.py

Reported values. One row per (municipality, catalog item, year, month).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.models.catalog import IndicatorDefinition, ServiceDefinition


class IndicatorValue(Base):
    """
    The unique constraint drives upsert semantics: writing an existing key
    replaces ``value_numeric`` instead of inserting a second row.
    """

    __tablename__ = "indicator_values"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    municipality_id: Mapped[int] = mapped_column(
        ForeignKey("municipalities.id", ondelete="RESTRICT"),
        nullable=False,
    )
    indicator_id: Mapped[int] = mapped_column(
        ForeignKey("indicator_catalog.id", ondelete="RESTRICT"),
        nullable=False,
    )
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    value_numeric: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "municipality_id",
            "indicator_id",
            "period_year",
            "period_month",
            name="uq_indicator_values_key",
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_indicator_values_month"),
        Index("ix_indicator_values_period", "period_year", "period_month"),
        Index("ix_indicator_values_updated_at", "updated_at"),
    )


class ServiceValue(Base):
    """
    Monthly service volume; same key and upsert rules as IndicatorValue.
    """

    __tablename__ = "service_values"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    municipality_id: Mapped[int] = mapped_column(
        ForeignKey("municipalities.id", ondelete="RESTRICT"),
        nullable=False,
    )
    service_id: Mapped[int] = mapped_column(
        ForeignKey("service_catalog.id", ondelete="RESTRICT"),
        nullable=False,
    )
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    value_numeric: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "municipality_id",
            "service_id",
            "period_year",
            "period_month",
            name="uq_service_values_key",
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_service_values_month"),
        Index("ix_service_values_period", "period_year", "period_month"),
        Index("ix_service_values_updated_at", "updated_at"),
    )


# ---------------------------------------------------------------------------
# Value kinds
# ---------------------------------------------------------------------------


class ValueKindName:
    INDICATORS = "indicators"
    SERVICES = "services"

    ALL = (INDICATORS, SERVICES)


@dataclass(frozen=True)
class ValueKind:
    """
    Pairs a value table with its catalog so repositories can treat both alike.

    ``item_field`` is the value-table column referencing the catalog and
    ``group_field`` is the catalog column a batch may be restricted to.
    """

    name: str
    value_model: type
    catalog_model: type
    item_field: str
    group_field: str

    @property
    def table_name(self) -> str:
        return self.value_model.__tablename__

    @property
    def item_column(self):
        return getattr(self.value_model, self.item_field)

    @property
    def group_column(self):
        return getattr(self.catalog_model, self.group_field)


VALUE_KINDS: dict[str, ValueKind] = {
    ValueKindName.INDICATORS: ValueKind(
        name=ValueKindName.INDICATORS,
        value_model=IndicatorValue,
        catalog_model=IndicatorDefinition,
        item_field="indicator_id",
        group_field="form_code",
    ),
    ValueKindName.SERVICES: ValueKind(
        name=ValueKindName.SERVICES,
        value_model=ServiceValue,
        catalog_model=ServiceDefinition,
        item_field="service_id",
        group_field="category",
    ),
}


def get_value_kind(name: str) -> ValueKind:
    try:
        return VALUE_KINDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown value kind {name!r}. Must be one of: {sorted(VALUE_KINDS)}."
        ) from None
