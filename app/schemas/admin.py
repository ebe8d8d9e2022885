"""
app/schemas/admin.py

Request and response schemas for account administration.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field


class UserResponse(BaseModel):
    id: int
    role: str
    municipality_id: int | None = None
    municipality_name: str | None = None
    is_active: bool
    password_reset_required: bool

    model_config = {"from_attributes": True}


class CreateUserRequest(BaseModel):
    role: str
    password: str
    municipality_id: int | None = Field(None, validation_alias=AliasChoices("municipality_id", "municipalityId"))
    is_active: bool = Field(True, validation_alias=AliasChoices("is_active", "isActive"))


class UpdateUserRequest(BaseModel):
    """Only the fields present in the request body are changed."""

    role: str | None = None
    municipality_id: int | None = Field(None, validation_alias=AliasChoices("municipality_id", "municipalityId"))
    is_active: bool | None = Field(None, validation_alias=AliasChoices("is_active", "isActive"))


class ResetPasswordRequest(BaseModel):
    new_password: str = Field(..., validation_alias=AliasChoices("new_password", "newPassword", "password"))
