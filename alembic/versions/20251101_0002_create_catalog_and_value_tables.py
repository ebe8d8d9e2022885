"""create catalog and value tables

Revision ID: 20251101_0002
Revises: 20251101_0001
Create Date: 2025-11-01 10:30:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20251101_0002"
down_revision = "20251101_0001"
branch_labels = None
depends_on = None


def _create_value_table(table: str, item_column: str, catalog_table: str) -> None:
    op.create_table(
        table,
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("municipality_id", sa.Integer(), nullable=False),
        sa.Column(item_column, sa.Integer(), nullable=False),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("value_numeric", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["municipality_id"], ["municipalities.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint([item_column], [f"{catalog_table}.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint(
            "municipality_id",
            item_column,
            "period_year",
            "period_month",
            name=f"uq_{table}_key",
        ),
        sa.CheckConstraint("period_month BETWEEN 1 AND 12", name=f"ck_{table}_month"),
    )
    op.create_index(f"ix_{table}_period", table, ["period_year", "period_month"], unique=False)
    op.create_index(f"ix_{table}_updated_at", table, ["updated_at"], unique=False)


def upgrade() -> None:
    op.create_table(
        "indicator_catalog",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("unit", sa.String(length=64), nullable=True),
        sa.Column("form_code", sa.String(length=64), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_indicator_catalog_code"),
    )
    op.create_index("ix_indicator_catalog_form_code", "indicator_catalog", ["form_code"], unique=False)

    op.create_table(
        "service_catalog",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("unit", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=255), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_service_catalog_code"),
    )
    op.create_index("ix_service_catalog_category", "service_catalog", ["category"], unique=False)

    _create_value_table("indicator_values", "indicator_id", "indicator_catalog")
    _create_value_table("service_values", "service_id", "service_catalog")


def downgrade() -> None:
    for table in ("service_values", "indicator_values"):
        op.drop_index(f"ix_{table}_updated_at", table_name=table)
        op.drop_index(f"ix_{table}_period", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_service_catalog_category", table_name="service_catalog")
    op.drop_table("service_catalog")
    op.drop_index("ix_indicator_catalog_form_code", table_name="indicator_catalog")
    op.drop_table("indicator_catalog")
