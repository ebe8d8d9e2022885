"""
app/services/user_admin_service.py

Account administration: user CRUD, password resets and municipality removal.

Pairing rules
-------------
operator           must be bound to an existing municipality
admin, governor    must not be bound to any municipality

A municipality has at most one account (unique ``users.municipality_id``);
a second one is rejected with ``ConflictError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import get_auth_settings
from app.errors import BadRequestError, ConflictError, InternalError, NotFoundError
from app.logging_utils import log_event
from app.services.auth_service import hash_password
from db.database import Database
from db.models.user import User, UserRole
from db.repositories.catalog_repository import CatalogRepository
from db.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass(frozen=True)
class UserView:
    """Detached, password-free view of an account."""

    id: int
    role: str
    municipality_id: int | None
    municipality_name: str | None
    is_active: bool
    password_reset_required: bool

    @classmethod
    def from_model(cls, user: User) -> "UserView":
        return cls(
            id=user.id,
            role=user.role,
            municipality_id=user.municipality_id,
            municipality_name=user.municipality.name if user.municipality is not None else None,
            is_active=user.is_active,
            password_reset_required=user.password_reset_required,
        )


def _validate_password(password: str) -> None:
    min_length = get_auth_settings().password_min_length
    if not password or len(password) < min_length:
        raise BadRequestError(f"Password must be at least {min_length} characters long.")


def _validate_pairing(role: str, municipality_id: int | None) -> None:
    if role not in UserRole.ALL:
        raise BadRequestError(f"Role must be one of: {', '.join(UserRole.ALL)}.")
    if role == UserRole.OPERATOR and municipality_id is None:
        raise BadRequestError("An operator account requires a municipality.")
    if role != UserRole.OPERATOR and municipality_id is not None:
        raise BadRequestError(f"A {role} account cannot be bound to a municipality.")


class UserAdminService:
    """
    Administrative operations. Callers enforce the admin-only scope first.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_users(self) -> list[UserView]:
        try:
            with self._database.transaction() as session:
                return [UserView.from_model(user) for user in UserRepository(session).list_all()]
        except SQLAlchemyError as exc:
            logger.exception("Failed to list users")
            raise InternalError("Failed to load users.") from exc

    def get_user(self, user_id: int) -> UserView:
        try:
            with self._database.transaction() as session:
                user = UserRepository(session).get(user_id)
                if user is None:
                    raise NotFoundError("User not found.")
                return UserView.from_model(user)
        except SQLAlchemyError as exc:
            logger.exception("Failed to load user_id=%s", user_id)
            raise InternalError("Failed to load user.") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(
        self,
        *,
        role: str,
        password: str,
        municipality_id: int | None = None,
        is_active: bool = True,
        acting_user_id: int | None = None,
    ) -> UserView:
        _validate_pairing(role, municipality_id)
        _validate_password(password)
        password_hash = hash_password(password)

        try:
            with self._database.transaction() as session:
                if municipality_id is not None and not CatalogRepository(session).municipality_exists(
                    municipality_id
                ):
                    raise NotFoundError(f"Municipality {municipality_id} not found.")
                user = UserRepository(session).add(
                    User(
                        role=role,
                        municipality_id=municipality_id,
                        password_hash=password_hash,
                        is_active=is_active,
                        password_reset_required=False,
                    )
                )
                session.refresh(user)
                view = UserView.from_model(user)
        except IntegrityError as exc:
            raise ConflictError("An account for this municipality already exists.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to create user role=%s", role)
            raise InternalError("Failed to create user.") from exc

        log_event(
            logger,
            logging.INFO,
            "user_created",
            user_id=view.id,
            role=view.role,
            municipality_id=view.municipality_id,
            acting_user_id=acting_user_id,
        )
        return view

    def update_user(
        self,
        user_id: int,
        *,
        role: str | None = None,
        municipality_id: Any = _UNSET,
        is_active: bool | None = None,
        acting_user_id: int | None = None,
    ) -> UserView:
        """
        Patch role, municipality binding or active flag.

        ``municipality_id`` distinguishes "not given" from an explicit None.
        """

        try:
            with self._database.transaction() as session:
                user = UserRepository(session).get(user_id)
                if user is None:
                    raise NotFoundError("User not found.")

                new_role = role if role is not None else user.role
                new_municipality_id = (
                    user.municipality_id if municipality_id is _UNSET else municipality_id
                )
                if role is not None and role != UserRole.OPERATOR and municipality_id is _UNSET:
                    new_municipality_id = None
                _validate_pairing(new_role, new_municipality_id)

                if new_municipality_id is not None and not CatalogRepository(
                    session
                ).municipality_exists(new_municipality_id):
                    raise NotFoundError(f"Municipality {new_municipality_id} not found.")

                user.role = new_role
                user.municipality_id = new_municipality_id
                if is_active is not None:
                    user.is_active = is_active
                session.flush()
                session.refresh(user)
                view = UserView.from_model(user)
        except IntegrityError as exc:
            raise ConflictError("An account for this municipality already exists.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to update user_id=%s", user_id)
            raise InternalError("Failed to update user.") from exc

        log_event(
            logger,
            logging.INFO,
            "user_updated",
            user_id=user_id,
            role=view.role,
            municipality_id=view.municipality_id,
            is_active=view.is_active,
            acting_user_id=acting_user_id,
        )
        return view

    def reset_password(
        self,
        user_id: int,
        new_password: str,
        *,
        acting_user_id: int | None = None,
    ) -> None:
        """Set a new password and force the user to change it at next login."""

        _validate_password(new_password)
        password_hash = hash_password(new_password)

        try:
            with self._database.transaction() as session:
                user = UserRepository(session).get(user_id)
                if user is None:
                    raise NotFoundError("User not found.")
                user.password_hash = password_hash
                user.password_reset_required = True
        except SQLAlchemyError as exc:
            logger.exception("Failed to reset password for user_id=%s", user_id)
            raise InternalError("Failed to reset password.") from exc

        log_event(logger, logging.INFO, "password_reset", user_id=user_id, acting_user_id=acting_user_id)

    def delete_user(self, user_id: int, *, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise BadRequestError("You cannot delete your own account.")

        try:
            with self._database.transaction() as session:
                repository = UserRepository(session)
                user = repository.get(user_id)
                if user is None:
                    raise NotFoundError("User not found.")
                repository.delete(user)
        except SQLAlchemyError as exc:
            logger.exception("Failed to delete user_id=%s", user_id)
            raise InternalError("Failed to delete user.") from exc

        log_event(logger, logging.INFO, "user_deleted", user_id=user_id, acting_user_id=acting_user_id)

    def delete_municipality(self, municipality_id: int, *, acting_user_id: int | None = None) -> None:
        """Remove a municipality; rejected while any user or value row references it."""

        try:
            with self._database.transaction() as session:
                catalog = CatalogRepository(session)
                municipality = catalog.get_municipality(municipality_id)
                if municipality is None:
                    raise NotFoundError(f"Municipality {municipality_id} not found.")
                if catalog.municipality_is_referenced(municipality_id):
                    raise ConflictError("The municipality is referenced by users or reported values.")
                catalog.delete_municipality(municipality)
        except IntegrityError as exc:
            raise ConflictError("The municipality is referenced by users or reported values.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to delete municipality_id=%s", municipality_id)
            raise InternalError("Failed to delete municipality.") from exc

        log_event(
            logger,
            logging.INFO,
            "municipality_deleted",
            municipality_id=municipality_id,
            acting_user_id=acting_user_id,
        )
