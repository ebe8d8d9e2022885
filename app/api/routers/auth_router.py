"""
app/api/routers/auth_router.py

Session endpoints: login, logout, current identity and password change.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, Request

from app.api.dependencies import (
    SESSION_IDENTITY_KEY,
    get_credential_verifier,
    get_identity,
    get_password_service,
)
from app.domain.identity import Identity, Operator, identity_to_session
from app.errors import InvalidCredentialsError
from app.logging_utils import log_event
from app.schemas.auth import ChangePasswordRequest, IdentityResponse, LoginRequest, MessageResponse
from app.services.auth_service import CredentialVerifier, PasswordService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _identity_response(identity: Identity) -> IdentityResponse:
    return IdentityResponse(
        user_id=identity.user_id,
        role=identity.role,
        municipality_id=identity.municipality_id,
        municipality_name=identity.municipality_name if isinstance(identity, Operator) else None,
        password_reset_required=identity.password_reset_required,
    )


@router.post("/login", response_model=IdentityResponse)
def login(
    payload: LoginRequest,
    request: Request,
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> IdentityResponse:
    """
    Verify credentials and store the identity in a fresh session.
    """

    client_host = request.client.host if request.client else None
    try:
        identity = verifier.authenticate(payload.selector, payload.password)
    except InvalidCredentialsError:
        log_event(logger, logging.WARNING, "login_failed", selector=str(payload.selector), client=client_host)
        raise

    request.session.clear()
    request.session[SESSION_IDENTITY_KEY] = identity_to_session(identity)
    log_event(
        logger,
        logging.INFO,
        "login_succeeded",
        user_id=identity.user_id,
        role=identity.role,
        municipality_id=identity.municipality_id,
        client=client_host,
    )
    return _identity_response(identity)


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request) -> MessageResponse:
    request.session.clear()
    return MessageResponse(message="Logged out.")


@router.get("/me", response_model=IdentityResponse)
def me(identity: Identity = Depends(get_identity)) -> IdentityResponse:
    return _identity_response(identity)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    password_service: PasswordService = Depends(get_password_service),
) -> MessageResponse:
    password_service.change_password(
        user_id=identity.user_id,
        old_password=payload.old_password,
        new_password=payload.new_password,
    )
    updated = replace(identity, password_reset_required=False)
    request.session[SESSION_IDENTITY_KEY] = identity_to_session(updated)
    log_event(logger, logging.INFO, "password_changed", user_id=identity.user_id)
    return MessageResponse(message="Password changed.")
