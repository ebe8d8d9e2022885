"""
Create an account, or reset the password of an existing one.

Examples:
    python -m scripts.create_user --role admin
    python -m scripts.create_user --role governor
    python -m scripts.create_user --role operator --municipality-id 42
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os

from app.services.auth_service import hash_password
from db.database import Database
from db.models.user import User, UserRole
from db.repositories.user_repository import UserRepository


def _find_existing(repository: UserRepository, role: str, municipality_id: int | None) -> User | None:
    if role == UserRole.ADMIN:
        return repository.get_admin()
    if role == UserRole.GOVERNOR:
        return repository.get_governor()
    return repository.get_operator_for_municipality(municipality_id)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or reset a portal account.")
    parser.add_argument("--role", required=True, choices=UserRole.ALL)
    parser.add_argument("--municipality-id", dest="municipality_id", type=int, default=None)
    parser.add_argument(
        "--require-change",
        dest="require_change",
        action="store_true",
        help="Force a password change at next login.",
    )
    args = parser.parse_args()

    if args.role == UserRole.OPERATOR and args.municipality_id is None:
        parser.error("--municipality-id is required for operator accounts")
    if args.role != UserRole.OPERATOR and args.municipality_id is not None:
        parser.error(f"--municipality-id is not allowed for {args.role} accounts")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    # PORTAL_USER_PASSWORD allows non-interactive provisioning
    password = os.getenv("PORTAL_USER_PASSWORD") or getpass.getpass("Password: ")
    if not password:
        parser.error("password must not be empty")

    database = Database.from_env()
    try:
        with database.transaction() as session:
            repository = UserRepository(session)
            user = _find_existing(repository, args.role, args.municipality_id)
            if user is None:
                user = repository.add(
                    User(
                        role=args.role,
                        municipality_id=args.municipality_id,
                        password_hash=hash_password(password),
                        is_active=True,
                        password_reset_required=args.require_change,
                    )
                )
                action = "created"
            else:
                user.password_hash = hash_password(password)
                user.is_active = True
                user.password_reset_required = args.require_change
                action = "updated"
            user_id = user.id
    finally:
        database.dispose()

    print(f"User {action}: id={user_id} role={args.role} municipality_id={args.municipality_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
