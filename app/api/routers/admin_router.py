"""
app/api/routers/admin_router.py

Account administration. Every endpoint requires the elevated (admin) scope.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_identity, get_user_admin_service
from app.domain.identity import Identity
from app.schemas.admin import CreateUserRequest, ResetPasswordRequest, UpdateUserRequest, UserResponse
from app.schemas.auth import MessageResponse
from app.services.access_guard import AccessScope, enforce
from app.services.user_admin_service import UserAdminService

router = APIRouter(prefix="/admin", tags=["admin"])

_ADMIN_SCOPE = AccessScope(elevated=True)
_ADMIN_WRITE_SCOPE = AccessScope(write=True, elevated=True)


@router.get("/users", response_model=list[UserResponse])
def list_users(
    identity: Identity = Depends(get_identity),
    admin_service: UserAdminService = Depends(get_user_admin_service),
) -> list[UserResponse]:
    enforce(identity, _ADMIN_SCOPE)
    return [UserResponse.model_validate(user) for user in admin_service.list_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    identity: Identity = Depends(get_identity),
    admin_service: UserAdminService = Depends(get_user_admin_service),
) -> UserResponse:
    enforce(identity, _ADMIN_SCOPE)
    return UserResponse.model_validate(admin_service.get_user(user_id))


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: CreateUserRequest,
    identity: Identity = Depends(get_identity),
    admin_service: UserAdminService = Depends(get_user_admin_service),
) -> UserResponse:
    enforce(identity, _ADMIN_WRITE_SCOPE)
    user = admin_service.create_user(
        role=payload.role,
        password=payload.password,
        municipality_id=payload.municipality_id,
        is_active=payload.is_active,
        acting_user_id=identity.user_id,
    )
    return UserResponse.model_validate(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: UpdateUserRequest,
    identity: Identity = Depends(get_identity),
    admin_service: UserAdminService = Depends(get_user_admin_service),
) -> UserResponse:
    """
    Partial update. ``municipalityId: null`` unbinds the account; omitting
    the field leaves the binding unchanged.
    """

    enforce(identity, _ADMIN_WRITE_SCOPE)
    changes = {}
    if "municipality_id" in payload.model_fields_set:
        changes["municipality_id"] = payload.municipality_id
    user = admin_service.update_user(
        user_id,
        role=payload.role,
        is_active=payload.is_active,
        acting_user_id=identity.user_id,
        **changes,
    )
    return UserResponse.model_validate(user)


@router.post("/users/{user_id}/password", response_model=MessageResponse)
def reset_password(
    user_id: int,
    payload: ResetPasswordRequest,
    identity: Identity = Depends(get_identity),
    admin_service: UserAdminService = Depends(get_user_admin_service),
) -> MessageResponse:
    enforce(identity, _ADMIN_WRITE_SCOPE)
    admin_service.reset_password(user_id, payload.new_password, acting_user_id=identity.user_id)
    return MessageResponse(message="Password reset; the user must change it at next login.")


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    identity: Identity = Depends(get_identity),
    admin_service: UserAdminService = Depends(get_user_admin_service),
) -> MessageResponse:
    enforce(identity, _ADMIN_WRITE_SCOPE)
    admin_service.delete_user(user_id, acting_user_id=identity.user_id)
    return MessageResponse(message="User deleted.")


@router.delete("/municipalities/{municipality_id}", response_model=MessageResponse)
def delete_municipality(
    municipality_id: int,
    identity: Identity = Depends(get_identity),
    admin_service: UserAdminService = Depends(get_user_admin_service),
) -> MessageResponse:
    enforce(identity, _ADMIN_WRITE_SCOPE)
    admin_service.delete_municipality(municipality_id, acting_user_id=identity.user_id)
    return MessageResponse(message="Municipality deleted.")
