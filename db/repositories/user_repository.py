"""
db/repositories/user_repository.py

Persistence layer for portal accounts.

The caller controls commit/rollback; this repository never commits on its own.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.user import User, UserRole


class UserRepository:
    """
    Lookups used by login plus the plain CRUD used by account administration.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Login lookups
    # ------------------------------------------------------------------

    def get_admin(self) -> User | None:
        """Return the admin account that carries no municipality binding."""
        stmt = (
            select(User)
            .where(User.role == UserRole.ADMIN, User.municipality_id.is_(None))
            .order_by(User.id)
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def get_governor(self) -> User | None:
        stmt = (
            select(User)
            .where(User.role == UserRole.GOVERNOR)
            .order_by(User.id)
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def get_operator_for_municipality(self, municipality_id: int) -> User | None:
        stmt = select(User).where(
            User.role == UserRole.OPERATOR,
            User.municipality_id == municipality_id,
        )
        return self._session.scalars(stmt).first()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def get(self, user_id: int) -> User | None:
        return self._session.get(User, user_id)

    def list_all(self) -> list[User]:
        stmt = select(User).order_by(User.role, User.municipality_id, User.id)
        return list(self._session.scalars(stmt).unique().all())

    def add(self, user: User) -> User:
        self._session.add(user)
        self._session.flush()
        return user

    def delete(self, user: User) -> None:
        self._session.delete(user)
        self._session.flush()
