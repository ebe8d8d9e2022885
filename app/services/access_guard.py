"""
app/services/access_guard.py

Authorization decision for municipality-scoped requests.

Rules
-----
Admin     always allowed.
Governor  aggregate reads only: no writes, no single-municipality scope.
Operator  exactly the assigned municipality, reads and writes.

``elevated`` scopes (imports, account administration, catalog-wide
maintenance) are admin-only.

``authorize`` is a pure function of (identity, scope). ``enforce`` is the
raising wrapper every handler touching values calls before storage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from app.domain.identity import Admin, Governor, Identity, Operator
from app.errors import BadRequestError, ForbiddenError
from app.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessScope:
    """
    What a request touches.

    ``municipality_id`` is None for aggregate (all-municipality) requests.
    """

    municipality_id: int | None = None
    write: bool = False
    elevated: bool = False


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Deny:
    reason: str


Decision = Union[Allow, Deny]

ALLOW = Allow()


def authorize(identity: Identity, scope: AccessScope) -> Decision:
    if isinstance(identity, Admin):
        return ALLOW

    if scope.elevated:
        return Deny("admin_only")

    if isinstance(identity, Governor):
        if scope.write:
            return Deny("read_only")
        if scope.municipality_id is not None:
            return Deny("aggregate_only")
        return ALLOW

    if isinstance(identity, Operator):
        if scope.municipality_id is not None and scope.municipality_id == identity.municipality_id:
            return ALLOW
        return Deny("forbidden")

    return Deny("unknown_identity")


def enforce(identity: Identity, scope: AccessScope) -> None:
    """
    Raise ``ForbiddenError`` when ``authorize`` denies.

    The deny reason is logged, never returned to the client.
    """

    decision = authorize(identity, scope)
    if isinstance(decision, Deny):
        log_event(
            logger,
            logging.WARNING,
            "access_denied",
            user_id=identity.user_id,
            role=identity.role,
            municipality_id=scope.municipality_id,
            write=scope.write,
            elevated=scope.elevated,
            reason=decision.reason,
        )
        raise ForbiddenError()


def require_scope(municipality_id: int | None) -> int:
    """
    Return the municipality id of an operation that requires one.

    Raises ``BadRequestError("missing scope")`` before any guard logic runs.
    """

    if municipality_id is None:
        raise BadRequestError("missing scope")
    return municipality_id
