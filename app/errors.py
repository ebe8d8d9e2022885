"""
app/errors.py

Error taxonomy shared by services and routers.

Every error carries an HTTP status and a short machine-readable code; the
exception handler registered in ``app.main`` renders them as
``{"error": code, "message": message}``.
"""

from __future__ import annotations


class PortalError(Exception):
    """Base class for expected, client-visible failures."""

    status_code: int = 500
    code: str = "internal"
    default_message: str = "Internal server error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class BadRequestError(PortalError):
    """Malformed or missing input: scope id, period, unreadable file structure."""

    status_code = 400
    code = "bad_request"
    default_message = "Bad request."


class UnauthorizedError(PortalError):
    """No valid session."""

    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class InvalidCredentialsError(UnauthorizedError):
    """
    Raised for an unknown selector, an inactive account or a wrong password.

    The message is identical in every case.
    """

    default_message = "Invalid municipality or password."


class ForbiddenError(PortalError):
    """Valid session, insufficient scope or role. The message never says why."""

    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class NotFoundError(PortalError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class ConflictError(PortalError):
    """Uniqueness violation on a natural key, or a delete blocked by references."""

    status_code = 409
    code = "conflict"
    default_message = "Conflict."


class InternalError(PortalError):
    """Storage or infrastructure failure. Details are logged, not returned."""
