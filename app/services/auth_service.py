"""
app/services/auth_service.py

Credential verification and password management.

Login selectors
---------------
"admin"     the admin account (no municipality binding)
"governor"  the governor account
<int>       the operator bound to that municipality id (numeric strings accepted)

Passwords are stored as bcrypt hashes. Every failure mode of
``authenticate`` raises the same ``InvalidCredentialsError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

import bcrypt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_auth_settings
from app.domain.identity import Admin, Governor, Identity, Operator
from app.errors import BadRequestError, InternalError, InvalidCredentialsError, NotFoundError
from db.database import Database
from db.models.user import User, UserRole
from db.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

ADMIN_SELECTOR = "admin"
GOVERNOR_SELECTOR = "governor"

# bcrypt ignores input beyond 72 bytes
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(password: str, *, rounds: int | None = None) -> str:
    """Hash with a fresh salt at ``BCRYPT_ROUNDS`` cost unless ``rounds`` is given."""
    cost = rounds if rounds is not None else get_auth_settings().bcrypt_rounds
    password_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    password_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        logger.error("Stored password hash is malformed")
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("dummy-password-for-timing")


# ---------------------------------------------------------------------------
# Selector parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoginSelector:
    role: str
    municipality_id: int | None = None


def parse_selector(selector: str | int) -> LoginSelector:
    """
    Classify a login selector.

    Raises ``BadRequestError`` when it is neither a role token nor an integer id.
    """

    if isinstance(selector, bool):
        raise BadRequestError("Invalid municipality selector format.")
    if isinstance(selector, int):
        return LoginSelector(role=UserRole.OPERATOR, municipality_id=selector)

    token = str(selector).strip().lower()
    if token == ADMIN_SELECTOR:
        return LoginSelector(role=UserRole.ADMIN)
    if token == GOVERNOR_SELECTOR:
        return LoginSelector(role=UserRole.GOVERNOR)
    try:
        return LoginSelector(role=UserRole.OPERATOR, municipality_id=int(token))
    except ValueError:
        raise BadRequestError("Invalid municipality selector format.") from None


def identity_for_user(user: User) -> Identity:
    if user.role == UserRole.ADMIN:
        return Admin(user_id=user.id, password_reset_required=user.password_reset_required)
    if user.role == UserRole.GOVERNOR:
        return Governor(user_id=user.id, password_reset_required=user.password_reset_required)
    if user.role == UserRole.OPERATOR and user.municipality_id is not None:
        return Operator(
            user_id=user.id,
            municipality_id=user.municipality_id,
            municipality_name=user.municipality.name if user.municipality is not None else None,
            password_reset_required=user.password_reset_required,
        )
    raise InternalError(f"User {user.id} has an inconsistent role binding.")


# ---------------------------------------------------------------------------
# Credential verifier
# ---------------------------------------------------------------------------


class CredentialVerifier:
    """
    Validates (selector, password) pairs against stored hashes.

    Has no side effects; establishing the session is the caller's job.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def authenticate(self, selector: str | int, password: str) -> Identity:
        parsed = parse_selector(selector)
        if not password:
            raise InvalidCredentialsError()

        try:
            user = self._database.run_read(lambda session: self._lookup(session, parsed))
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed")
            raise InternalError("Authentication is temporarily unavailable.") from exc

        if user is None:
            verify_password(password, _dummy_hash())
            raise InvalidCredentialsError()

        password_ok = verify_password(password, user.password_hash)
        if not password_ok or not user.is_active:
            raise InvalidCredentialsError()

        return identity_for_user(user)

    @staticmethod
    def _lookup(session: Session, parsed: LoginSelector) -> User | None:
        repository = UserRepository(session)
        if parsed.role == UserRole.ADMIN:
            return repository.get_admin()
        if parsed.role == UserRole.GOVERNOR:
            return repository.get_governor()
        return repository.get_operator_for_municipality(parsed.municipality_id)


# ---------------------------------------------------------------------------
# Password change
# ---------------------------------------------------------------------------


class PasswordService:
    """
    Self-service password change for the signed-in user.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def change_password(self, *, user_id: int, old_password: str, new_password: str) -> None:
        min_length = get_auth_settings().password_min_length
        if len(new_password) < min_length:
            raise BadRequestError(f"New password must be at least {min_length} characters long.")
        if new_password == old_password:
            raise BadRequestError("New password must differ from the current one.")

        try:
            with self._database.transaction() as session:
                user = UserRepository(session).get(user_id)
                if user is None:
                    raise NotFoundError("User not found.")
                if not verify_password(old_password, user.password_hash):
                    raise BadRequestError("Current password is incorrect.")
                user.password_hash = hash_password(new_password)
                user.password_reset_required = False
        except SQLAlchemyError as exc:
            logger.exception("Password change failed user_id=%s", user_id)
            raise InternalError("Unable to change password.") from exc
