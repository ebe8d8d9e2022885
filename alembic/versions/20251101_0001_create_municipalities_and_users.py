"""create municipalities and users tables

Revision ID: 20251101_0001
Revises:
Create Date: 2025-11-01 10:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20251101_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "municipalities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("head_name", sa.String(length=255), nullable=True,
                  comment="Full name of the head of the municipality"),
        sa.Column("head_position", sa.String(length=255), nullable=True,
                  comment="Official title of the head of the municipality"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_municipalities_name"),
    )
    op.create_index("ix_municipalities_is_active", "municipalities", ["is_active"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, comment="admin, governor, operator"),
        sa.Column("municipality_id", sa.Integer(), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("password_reset_required", sa.Boolean(), nullable=False, server_default=sa.text("false"),
                  comment="Set when an administrator resets the password"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["municipality_id"], ["municipalities.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("municipality_id", name="uq_users_municipality_id"),
        sa.CheckConstraint("role IN ('admin', 'governor', 'operator')", name="ck_users_role"),
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_municipalities_is_active", table_name="municipalities")
    op.drop_table("municipalities")
