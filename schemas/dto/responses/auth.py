"""
Response DTOs for authentication endpoints.

Every success body has the shape ``{success, message?, data}``; keys are
camelCase on the wire.

UserResponse: sanitized user. Never carries hashes, reset fields,
  refresh records or lockout counters.
SuccessResponse: generic envelope
UserData: data of register / profile / admin get
AuthSessionData: data of login and Google sign-in
AccessTokenData: data of refresh-token
UserListData: data of admin list
"""

from __future__ import annotations

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from schemas.models.user import UserDoc

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)

T = TypeVar("T")


class AddressResponse(BaseModel):
    model_config = _CAMEL

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class UserResponse(BaseModel):
    """Public view of a UserDoc."""

    model_config = _CAMEL

    id: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    phone: Optional[str] = None
    role: str
    auth_provider: str
    is_active: bool
    is_verified: bool
    email_verified: bool
    images: list[str] = []
    address: Optional[AddressResponse] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: UserDoc) -> "UserResponse":
        return cls(
            id=str(user.id),
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            auth_provider=user.auth_provider,
            is_active=user.is_active,
            is_verified=user.is_verified,
            email_verified=user.email_verified,
            images=list(user.images),
            address=(
                AddressResponse(**user.address.model_dump()) if user.address else None
            ),
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class SuccessResponse(BaseModel, Generic[T]):
    model_config = _CAMEL

    success: bool = True
    message: Optional[str] = None
    data: T


class UserData(BaseModel):
    model_config = _CAMEL

    user: UserResponse


class AuthSessionData(BaseModel):
    """Login result. The refresh token travels only in the httpOnly cookie."""

    model_config = _CAMEL

    user: UserResponse
    access_token: str
    is_temporary_password: bool = False


class AccessTokenData(BaseModel):
    model_config = _CAMEL

    access_token: str


class UserListData(BaseModel):
    model_config = _CAMEL

    users: list[UserResponse]
    count: int
