"""
app/domain/identity.py

Authenticated identity carried by a session.

``Identity`` is a closed union of three frozen dataclasses. Handlers never
compare role strings; they build an ``AccessScope`` and call the access guard.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from db.models.user import UserRole


@dataclass(frozen=True)
class Admin:
    """Unrestricted access."""

    user_id: int
    password_reset_required: bool = False

    role: ClassVar[str] = UserRole.ADMIN
    municipality_id: ClassVar[None] = None


@dataclass(frozen=True)
class Governor:
    """Aggregate, read-only access across all municipalities."""

    user_id: int
    password_reset_required: bool = False

    role: ClassVar[str] = UserRole.GOVERNOR
    municipality_id: ClassVar[None] = None


@dataclass(frozen=True)
class Operator:
    """Read/write access to exactly one municipality."""

    user_id: int
    municipality_id: int
    municipality_name: str | None = None
    password_reset_required: bool = False

    role: ClassVar[str] = UserRole.OPERATOR


Identity = Union[Admin, Governor, Operator]


def identity_to_session(identity: Identity) -> dict[str, Any]:
    """Serialize an identity into the JSON-safe record stored in the session cookie."""
    record: dict[str, Any] = {
        "user_id": identity.user_id,
        "role": identity.role,
        "password_reset_required": identity.password_reset_required,
    }
    if isinstance(identity, Operator):
        record["municipality_id"] = identity.municipality_id
        record["municipality_name"] = identity.municipality_name
    return record


def identity_from_session(record: Any) -> Identity | None:
    """
    Rebuild an identity from a session record.

    Returns None for a missing or malformed record, which callers treat as
    "not authenticated".
    """
    if not isinstance(record, dict):
        return None

    user_id = record.get("user_id")
    role = record.get("role")
    reset_required = bool(record.get("password_reset_required", False))
    if not isinstance(user_id, int):
        return None

    if role == UserRole.ADMIN:
        return Admin(user_id=user_id, password_reset_required=reset_required)
    if role == UserRole.GOVERNOR:
        return Governor(user_id=user_id, password_reset_required=reset_required)
    if role == UserRole.OPERATOR:
        municipality_id = record.get("municipality_id")
        if not isinstance(municipality_id, int):
            return None
        return Operator(
            user_id=user_id,
            municipality_id=municipality_id,
            municipality_name=record.get("municipality_name"),
            password_reset_required=reset_required,
        )
    return None
