"""
tests/test_auth_service.py

Tests for app/services/auth_service.py against the seeded SQLite database.

Coverage
--------
- parse_selector: role tokens, integer ids, numeric strings, bad formats.
- CredentialVerifier: admin, governor and operator logins map to the right
  identity variant; unknown selector, wrong password and inactive accounts
  all fail with the same InvalidCredentialsError.
- PasswordService: length rule, same-password rule, wrong current password,
  successful change clears password_reset_required.
- verify_password tolerates a malformed stored hash.
"""

from __future__ import annotations

import pytest

from app.domain.identity import Admin, Governor, Operator
from app.errors import BadRequestError, InvalidCredentialsError
from app.services.auth_service import (
    CredentialVerifier,
    PasswordService,
    hash_password,
    parse_selector,
    verify_password,
)
from db.database import Database
from db.models.user import User, UserRole
from tests.conftest import (
    ADMIN_PASSWORD,
    GOVERNOR_PASSWORD,
    INACTIVE_PASSWORD,
    OPERATOR_42_PASSWORD,
)


# ---------------------------------------------------------------------------
# Selector parsing
# ---------------------------------------------------------------------------


class TestParseSelector:
    def test_role_tokens(self) -> None:
        assert parse_selector("admin").role == UserRole.ADMIN
        assert parse_selector(" Governor ").role == UserRole.GOVERNOR

    def test_integer_and_numeric_string(self) -> None:
        assert parse_selector(42).municipality_id == 42
        assert parse_selector("42").municipality_id == 42
        assert parse_selector("42").role == UserRole.OPERATOR

    @pytest.mark.parametrize("selector", ["mayor", "4x2", "", True])
    def test_invalid_format(self, selector) -> None:
        with pytest.raises(BadRequestError, match="Invalid municipality selector format"):
            parse_selector(selector)


# ---------------------------------------------------------------------------
# Credential verifier
# ---------------------------------------------------------------------------


class TestCredentialVerifier:
    def test_admin_login(self, database: Database) -> None:
        identity = CredentialVerifier(database).authenticate("admin", ADMIN_PASSWORD)
        assert isinstance(identity, Admin)

    def test_governor_login(self, database: Database) -> None:
        identity = CredentialVerifier(database).authenticate("governor", GOVERNOR_PASSWORD)
        assert isinstance(identity, Governor)

    def test_operator_login_carries_municipality(self, database: Database) -> None:
        identity = CredentialVerifier(database).authenticate(42, OPERATOR_42_PASSWORD)
        assert isinstance(identity, Operator)
        assert identity.municipality_id == 42
        assert identity.municipality_name == "Грязинский муниципальный район"

    @pytest.mark.parametrize(
        "selector, password",
        [
            ("admin", "wrong-password"),
            (42, ADMIN_PASSWORD),
            (7, OPERATOR_42_PASSWORD),
            (1, INACTIVE_PASSWORD),
            ("admin", ""),
        ],
    )
    def test_failures_are_indistinguishable(self, database: Database, selector, password) -> None:
        with pytest.raises(InvalidCredentialsError) as excinfo:
            CredentialVerifier(database).authenticate(selector, password)
        assert excinfo.value.message == "Invalid municipality or password."


# ---------------------------------------------------------------------------
# Password change
# ---------------------------------------------------------------------------


class TestPasswordService:
    def test_too_short(self, database: Database, user_ids: dict[str, int]) -> None:
        with pytest.raises(BadRequestError, match="at least"):
            PasswordService(database).change_password(
                user_id=user_ids["operator_42"], old_password=OPERATOR_42_PASSWORD, new_password="short"
            )

    def test_same_as_old(self, database: Database, user_ids: dict[str, int]) -> None:
        with pytest.raises(BadRequestError, match="differ"):
            PasswordService(database).change_password(
                user_id=user_ids["operator_42"],
                old_password=OPERATOR_42_PASSWORD,
                new_password=OPERATOR_42_PASSWORD,
            )

    def test_wrong_current_password(self, database: Database, user_ids: dict[str, int]) -> None:
        with pytest.raises(BadRequestError, match="incorrect"):
            PasswordService(database).change_password(
                user_id=user_ids["operator_42"], old_password="not-my-password", new_password="brand-new-pass"
            )

    def test_change_allows_login_with_new_password(self, database: Database, user_ids: dict[str, int]) -> None:
        user_id = user_ids["operator_42"]
        with database.transaction() as session:
            session.get(User, user_id).password_reset_required = True

        PasswordService(database).change_password(
            user_id=user_id, old_password=OPERATOR_42_PASSWORD, new_password="brand-new-pass"
        )

        verifier = CredentialVerifier(database)
        identity = verifier.authenticate(42, "brand-new-pass")
        assert identity.password_reset_required is False
        with pytest.raises(InvalidCredentialsError):
            verifier.authenticate(42, OPERATOR_42_PASSWORD)


class TestVerifyPassword:
    def test_round_trip(self) -> None:
        stored = hash_password("secret-value", rounds=4)
        assert verify_password("secret-value", stored)
        assert not verify_password("other-value", stored)

    def test_malformed_hash_is_rejected(self) -> None:
        assert verify_password("secret-value", "not-a-bcrypt-hash") is False
