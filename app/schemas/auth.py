"""
app/schemas/auth.py

Request and response schemas for session endpoints.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field


class LoginRequest(BaseModel):
    """
    ``selector`` is ``"admin"``, ``"governor"`` or a municipality id.
    """

    selector: str | int = Field(..., validation_alias=AliasChoices("selector", "municipality_id", "municipalityId"))
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1, validation_alias=AliasChoices("old_password", "oldPassword"))
    new_password: str = Field(..., min_length=1, validation_alias=AliasChoices("new_password", "newPassword"))


class IdentityResponse(BaseModel):
    user_id: int
    role: str
    municipality_id: int | None = None
    municipality_name: str | None = None
    password_reset_required: bool = False


class MessageResponse(BaseModel):
    success: bool = True
    message: str
