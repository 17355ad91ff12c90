"""
Request DTOs for authentication endpoints.

Bodies arrive in camelCase (``firstName``); fields are snake_case in Python.
Unknown fields are ignored, so a client cannot smuggle e.g. ``role`` into
registration.

RegisterRequest: POST /api/auth/register
LoginRequest: POST /api/auth/login
RequestPasswordResetRequest: POST /api/auth/request-password-reset
ResetPasswordRequest: POST /api/auth/reset-password
ChangePasswordRequest: PUT /api/auth/change-password
UpdateProfileRequest: PUT /api/auth/profile
GoogleLoginRequest: POST /api/auth/google
UpdateUserStatusRequest: PUT /api/auth/users/{id}/status
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from schemas.models.user import Role
from shared.validators import validate_phone

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _check_name(value: str) -> str:
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError("must be between 2 and 50 characters")
    return value


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not validate_phone(value):
        raise ValueError("Please provide a valid phone number")
    return value


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register. No password: one is generated."""

    model_config = _CAMEL

    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _names(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    model_config = _CAMEL

    email: EmailStr
    password: str = Field(min_length=1)


class RequestPasswordResetRequest(BaseModel):
    model_config = _CAMEL

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/auth/reset-password.

    ``token`` is the plaintext token from the reset link. Password policy is
    checked by the service so the failure lists every missing requirement.
    """

    model_config = _CAMEL

    token: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    model_config = _CAMEL

    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class AddressPayload(BaseModel):
    model_config = _CAMEL

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    """Request body for PUT /api/auth/profile. Only these fields are editable."""

    model_config = _CAMEL

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[AddressPayload] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _names(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_name(v)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class GoogleLoginRequest(BaseModel):
    """Request body for POST /api/auth/google.

    ``user_info`` is the raw Google userinfo payload; its required keys are
    checked by the service so a missing email or id is an OAuth data error
    rather than a generic validation failure.
    """

    model_config = _CAMEL

    token: str = ""
    user_info: dict[str, Any] = Field(default_factory=dict)


class UpdateUserStatusRequest(BaseModel):
    """Request body for PUT /api/auth/users/{id}/status (admin)."""

    model_config = _CAMEL

    is_active: Optional[bool] = None
    role: Optional[Role] = None
