"""
User document model.

Maps to the `users` MongoDB collection.

Two creation paths produce slightly different shapes:
- Local registration: temporary password set, no password_hash, unverified
- Google OAuth registration: google_id set, no credentials, verified

Secrets are never stored in the clear: password_hash and
temporary_password_hash are argon2 hashes, reset_token_hash and each
RefreshTokenRecord.token_hash are SHA-256 digests of the issued token.

There are no save hooks. New documents come from new_local()/new_google(),
and every repository update sets updated_at itself.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict

from schemas.models.base import MongoBaseModel, UtcDatetime


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


class AuthProvider(str, Enum):
    LOCAL = "local"
    GOOGLE = "google"


class Address(BaseModel):
    """Embedded postal address sub-document."""

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class RefreshTokenRecord(BaseModel):
    """Server-side record of one issued refresh token (one per session)."""

    token_hash: str
    created_at: UtcDatetime
    expires_at: UtcDatetime
    device_info: Optional[str] = None
    ip_address: Optional[str] = None


class UserDoc(MongoBaseModel):
    """
    Document model for the `users` collection.

    refresh_tokens is ordered oldest first and never longer than
    AuthSettings.max_refresh_tokens; appends trim from the front.
    """

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None

    password_hash: Optional[str] = None
    temporary_password_hash: Optional[str] = None
    temporary_password_expires_at: Optional[UtcDatetime] = None
    google_id: Optional[str] = None
    auth_provider: AuthProvider = AuthProvider.LOCAL

    role: Role = Role.USER
    is_active: bool = True
    is_verified: bool = False
    email_verified: bool = False
    images: list[str] = []
    address: Optional[Address] = None

    refresh_tokens: list[RefreshTokenRecord] = []
    reset_token_hash: Optional[str] = None
    reset_token_expires_at: Optional[UtcDatetime] = None

    failed_login_attempts: int = 0
    locked_until: Optional[UtcDatetime] = None
    last_login: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    # ── Derived state ────────────────────────────────────────────────────────

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now

    def has_valid_temporary_password(self, now: datetime) -> bool:
        return (
            self.temporary_password_hash is not None
            and self.temporary_password_expires_at is not None
            and self.temporary_password_expires_at > now
        )

    def has_expired_temporary_password(self, now: datetime) -> bool:
        """A temporary password whose expiry has passed is void and due for purging."""
        return (
            self.temporary_password_hash is not None
            and self.temporary_password_expires_at is not None
            and self.temporary_password_expires_at <= now
        )

    def has_lapsed_temporary_credential(self, now: datetime) -> bool:
        """Local account whose only credential was a temporary password that is gone.

        Covers both an expired hash still on the document and one the
        sweeper already removed.
        """
        if self.has_expired_temporary_password(now):
            return True
        return (
            self.auth_provider == AuthProvider.LOCAL.value
            and self.password_hash is None
            and not self.has_valid_temporary_password(now)
        )

    def is_oauth_only(self, now: datetime) -> bool:
        return (
            self.password_hash is None
            and not self.has_valid_temporary_password(now)
            and self.auth_provider == AuthProvider.GOOGLE.value
        )

    # ── Constructors ─────────────────────────────────────────────────────────

    @classmethod
    def new_local(
        cls,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str],
        temporary_password_hash: str,
        temporary_password_ttl: timedelta,
        now: datetime,
    ) -> "UserDoc":
        """Build a locally-registered user holding only a temporary password.

        The role is always the least-privileged one; admin provisioning happens
        out of band.
        """
        return cls(
            _id=ObjectId(),
            first_name=first_name,
            last_name=last_name,
            email=email.strip().lower(),
            phone=phone,
            temporary_password_hash=temporary_password_hash,
            temporary_password_expires_at=now + temporary_password_ttl,
            auth_provider=AuthProvider.LOCAL,
            role=Role.USER,
            is_active=True,
            email_verified=False,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def new_google(
        cls,
        *,
        first_name: str,
        last_name: str,
        email: str,
        google_id: str,
        picture: Optional[str],
        first_session: RefreshTokenRecord,
        user_id: ObjectId,
        now: datetime,
    ) -> "UserDoc":
        """Build a Google-only user (no password) with its first session attached."""
        return cls(
            _id=user_id,
            first_name=first_name,
            last_name=last_name,
            email=email.strip().lower(),
            google_id=google_id,
            auth_provider=AuthProvider.GOOGLE,
            images=[picture] if picture else [],
            role=Role.USER,
            is_active=True,
            is_verified=True,
            email_verified=True,
            refresh_tokens=[first_session],
            last_login=now,
            created_at=now,
            updated_at=now,
        )
