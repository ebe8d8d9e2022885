"""
db/models/user.py

Portal accounts. One row per admin, governor or municipality operator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.municipality import Municipality


class UserRole:
    ADMIN = "admin"
    GOVERNOR = "governor"
    OPERATOR = "operator"

    ALL = (ADMIN, GOVERNOR, OPERATOR)


class User(Base, TimestampMixin):
    """
    Login account.

    Operators are bound to exactly one municipality; admins and governors
    carry no municipality. ``municipality_id`` is unique, so a municipality has
    at most one operator account.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    role: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="admin, governor, operator",
    )

    municipality_id: Mapped[int | None] = mapped_column(
        ForeignKey("municipalities.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
    )

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    password_reset_required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Set when an administrator resets the password",
    )

    municipality: Mapped["Municipality | None"] = relationship("Municipality", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'governor', 'operator')",
            name="ck_users_role",
        ),
        Index("ix_users_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role!r} municipality_id={self.municipality_id}>"
