"""
db/models/municipality.py

Municipality: the reporting unit every value row and operator account is scoped to.
"""

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class Municipality(Base, TimestampMixin):
    """
    One municipality of the region.

    ``name`` is the natural key the spreadsheet importer matches against;
    ``id`` is the foreign key used by users and value rows. Referencing rows
    use ``ON DELETE RESTRICT`` so a referenced municipality cannot be removed.
    """

    __tablename__ = "municipalities"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    head_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Full name of the head of the municipality",
    )

    head_position: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Official title of the head of the municipality",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __table_args__ = (
        Index("ix_municipalities_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Municipality id={self.id} name={self.name!r}>"
