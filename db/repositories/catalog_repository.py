"""
db/repositories/catalog_repository.py

Access to municipalities and the indicator/service catalogs.

The caller controls commit/rollback; this repository never commits on its own.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session

from db.base import utc_now
from db.models.catalog import IndicatorDefinition, ServiceDefinition
from db.models.municipality import Municipality
from db.models.user import User
from db.models.values import VALUE_KINDS, ValueKind
from db.repositories._dialect import dialect_insert


class CatalogRepository:
    """
    Municipality and catalog lookups.

    Name maps are built on every call; callers that need a stable view for the
    duration of one operation hold on to the returned dict.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Municipalities
    # ------------------------------------------------------------------

    def list_municipalities(self, *, only_ids: Iterable[int] | None = None) -> list[Municipality]:
        stmt = select(Municipality).where(Municipality.is_active.is_(True))
        if only_ids is not None:
            stmt = stmt.where(Municipality.id.in_(list(only_ids)))
        return list(self._session.scalars(stmt.order_by(Municipality.name)).all())

    def get_municipality(self, municipality_id: int) -> Municipality | None:
        return self._session.get(Municipality, municipality_id)

    def municipality_exists(self, municipality_id: int) -> bool:
        stmt = select(exists().where(Municipality.id == municipality_id))
        return bool(self._session.scalar(stmt))

    def municipality_is_referenced(self, municipality_id: int) -> bool:
        """True when a user or any value row points at the municipality."""
        clauses = [exists().where(User.municipality_id == municipality_id)]
        for kind in VALUE_KINDS.values():
            clauses.append(exists().where(kind.value_model.municipality_id == municipality_id))
        return bool(self._session.scalar(select(or_(*clauses))))

    def delete_municipality(self, municipality: Municipality) -> None:
        self._session.delete(municipality)
        self._session.flush()

    def municipality_name_map(self, normalize: Callable[[str], str]) -> dict[str, int]:
        """Map normalized municipality name -> id."""
        rows = self._session.execute(select(Municipality.id, Municipality.name)).all()
        return {normalize(name): municipality_id for municipality_id, name in rows}

    # ------------------------------------------------------------------
    # Catalogs
    # ------------------------------------------------------------------

    def list_indicators(self, form_code: str) -> list[IndicatorDefinition]:
        stmt = (
            select(IndicatorDefinition)
            .where(
                IndicatorDefinition.form_code == form_code,
                IndicatorDefinition.is_active.is_(True),
            )
            .order_by(IndicatorDefinition.sort_order.is_(None), IndicatorDefinition.sort_order, IndicatorDefinition.id)
        )
        return list(self._session.scalars(stmt).all())

    def list_services(self, category: str | None = None) -> list[ServiceDefinition]:
        stmt = select(ServiceDefinition).where(ServiceDefinition.is_active.is_(True))
        if category is not None:
            stmt = stmt.where(ServiceDefinition.category == category)
        stmt = stmt.order_by(
            ServiceDefinition.sort_order.is_(None), ServiceDefinition.sort_order, ServiceDefinition.id
        )
        return list(self._session.scalars(stmt).all())

    def active_item_ids(self, kind: ValueKind, *, group: str | None = None) -> set[int]:
        """Ids of active catalog entries, optionally restricted to one form/category."""
        model = kind.catalog_model
        stmt = select(model.id).where(model.is_active.is_(True))
        if group is not None:
            stmt = stmt.where(kind.group_column == group)
        return set(self._session.scalars(stmt).all())

    def item_name_map(
        self,
        kind: ValueKind,
        normalize: Callable[[str], str],
        *,
        group: str | None = None,
    ) -> dict[str, int]:
        """Map normalized catalog name -> id for active entries."""
        model = kind.catalog_model
        stmt = select(model.id, model.name).where(model.is_active.is_(True))
        if group is not None:
            stmt = stmt.where(kind.group_column == group)
        return {normalize(name): item_id for item_id, name in self._session.execute(stmt).all()}

    def item_code_map(self, kind: ValueKind, *, group: str | None = None) -> dict[str, int]:
        """Map catalog code -> id for active entries."""
        model = kind.catalog_model
        stmt = select(model.code, model.id).where(model.is_active.is_(True))
        if group is not None:
            stmt = stmt.where(kind.group_column == group)
        return dict(self._session.execute(stmt).all())

    def count_municipalities(self) -> int:
        return int(self._session.scalar(select(func.count()).select_from(Municipality)) or 0)

    # ------------------------------------------------------------------
    # Reference data upserts
    # ------------------------------------------------------------------

    def upsert_municipalities(self, rows: Sequence[dict[str, Any]]) -> int:
        """
        Insert or update municipalities keyed by ``name``.

        Each row carries ``name`` and optionally ``head_name``/``head_position``.
        Duplicate names within the call keep the last row.
        """
        deduped = list({row["name"]: row for row in rows}.values())
        if not deduped:
            return 0
        written_at = utc_now()
        payloads = [
            {
                "name": row["name"],
                "head_name": row.get("head_name"),
                "head_position": row.get("head_position"),
                "is_active": True,
                "updated_at": written_at,
            }
            for row in deduped
        ]
        stmt = dialect_insert(self._session, Municipality).values(payloads)
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={
                "head_name": stmt.excluded.head_name,
                "head_position": stmt.excluded.head_position,
                "is_active": stmt.excluded.is_active,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(Municipality.id)
        return len(self._session.scalars(stmt).all())

    def upsert_catalog_items(self, kind: ValueKind, rows: Sequence[dict[str, Any]]) -> int:
        """
        Insert or update catalog entries keyed by ``code``.

        Rows carry ``code``, ``name`` and optionally ``unit``, ``sort_order``
        and the kind's group field (``form_code`` or ``category``).
        """
        model = kind.catalog_model
        deduped = list({row["code"]: row for row in rows}.values())
        if not deduped:
            return 0
        payloads = [
            {
                "code": row["code"],
                "name": row["name"],
                "unit": row.get("unit"),
                kind.group_field: row.get(kind.group_field),
                "sort_order": row.get("sort_order"),
                "is_active": row.get("is_active", True),
            }
            for row in deduped
        ]
        stmt = dialect_insert(self._session, model).values(payloads)
        stmt = stmt.on_conflict_do_update(
            index_elements=["code"],
            set_={
                "name": stmt.excluded.name,
                "unit": stmt.excluded.unit,
                kind.group_field: getattr(stmt.excluded, kind.group_field),
                "sort_order": stmt.excluded.sort_order,
                "is_active": stmt.excluded.is_active,
            },
        ).returning(model.id)
        return len(self._session.scalars(stmt).all())
