"""
AuthService: the credential lifecycle.

Registration (temporary password), password login with lockout, refresh
token rotation, logout, password reset and change, Google sign-in, profile
updates and the admin user operations all live here. Routes translate HTTP
to these calls and back; they never inspect credentials themselves.

Failures are raised as AuthError(kind) (see errors.py for the one table that
maps kinds to HTTP statuses) or as the generic AppError subclasses.

Emails are best-effort: they run as background tasks bounded by
AuthSettings.email_send_timeout_seconds and their outcome is only logged.
drain() waits for in-flight sends on shutdown.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from config import AuthSettings
from errors import (
    AuthenticationError,
    AuthError,
    AuthErrorKind,
    NotFoundError,
    ValidationError,
)
from infrastructure.email.protocol import EmailProvider
from infrastructure.oauth_clients import (
    GoogleProfile,
    GoogleTokenVerifier,
    extract_google_profile,
)
from repositories.user_repository import UserRepository, normalize_email, to_object_id
from schemas.models.user import Address, RefreshTokenRecord, UserDoc
from services.token_service import TokenService, TokenVerificationError
from shared.crypto import hash_password_async, hash_token, verify_password_async
from shared.datetime_utils import utc_now
from shared.generators import generate_reset_token, generate_temporary_password
from shared.logging import get_logger, hash_ip
from shared.validators import validate_password

log = get_logger(__name__)

ADMIN_LIST_LIMIT = 500


@dataclass(frozen=True)
class ClientInfo:
    """Where a session was started from; stored on its refresh record."""

    device_info: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    """A freshly authenticated session."""

    user: UserDoc
    access_token: str
    refresh_token: str
    is_temporary_password: bool = False


class AuthService:
    def __init__(
        self,
        user_repo: UserRepository,
        token_service: TokenService,
        email_provider: EmailProvider,
        settings: AuthSettings,
        frontend_url: str,
        google_verifier: Optional[GoogleTokenVerifier] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._users = user_repo
        self._tokens = token_service
        self._email = email_provider
        self._settings = settings
        self._frontend_url = frontend_url.rstrip("/")
        self._google_verifier = google_verifier
        self._clock = clock
        self._background_tasks: set[asyncio.Task] = set()

    # ── Background email ─────────────────────────────────────────────────────

    def _send_in_background(self, email_type: str, send: Awaitable[bool]) -> None:
        task = asyncio.create_task(self._deliver(email_type, send))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _deliver(self, email_type: str, send: Awaitable[bool]) -> None:
        try:
            sent = await asyncio.wait_for(
                send, timeout=self._settings.email_send_timeout_seconds
            )
        except asyncio.TimeoutError:
            log.warning("email_send_timeout", email_type=email_type)
            return
        except Exception as e:
            log.error(
                "email_send_failed",
                email_type=email_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if not sent:
            log.warning("email_not_delivered", email_type=email_type)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight emails; cancel whatever is still running after timeout."""
        if not self._background_tasks:
            return
        _, pending = await asyncio.wait(set(self._background_tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            log.warning("email_tasks_cancelled", count=len(pending))

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _new_session(
        self, user_id: ObjectId, email: str, role: str, client: ClientInfo, now: datetime
    ) -> tuple[str, str, RefreshTokenRecord]:
        access_token = self._tokens.issue_access_token(str(user_id), email, role)
        refresh_token = self._tokens.issue_refresh_token(str(user_id))
        record = RefreshTokenRecord(
            token_hash=hash_token(refresh_token),
            created_at=now,
            expires_at=now + self._tokens.refresh_token_ttl,
            device_info=client.device_info,
            ip_address=client.ip_address,
        )
        return access_token, refresh_token, record

    @staticmethod
    def _check_new_password(password: str, field: str) -> None:
        is_valid, missing = validate_password(password)
        if not is_valid:
            raise ValidationError(
                "Password does not meet requirements", field=field, details=missing
            )

    async def _require_user(self, user_id: ObjectId) -> UserDoc:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ── Registration ─────────────────────────────────────────────────────────

    async def register(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str] = None,
    ) -> UserDoc:
        """Create a local account and email it a temporary password.

        Raises:
            AuthError(DUPLICATE_EMAIL): the email is already registered.
        """
        email = normalize_email(email)
        if await self._users.find_by_email(email) is not None:
            raise AuthError(AuthErrorKind.DUPLICATE_EMAIL, field="email")

        temporary_password = generate_temporary_password(
            self._settings.temporary_password_length
        )
        temporary_hash = await hash_password_async(temporary_password)

        now = self._clock()
        user = UserDoc.new_local(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            temporary_password_hash=temporary_hash,
            temporary_password_ttl=timedelta(
                seconds=self._settings.temporary_password_ttl_seconds
            ),
            now=now,
        )
        try:
            await self._users.insert(user)
        except DuplicateKeyError:
            raise AuthError(AuthErrorKind.DUPLICATE_EMAIL, field="email") from None

        log.info("user_registered", user_id=str(user.id), auth_provider="local")
        self._send_in_background(
            "temporary_password",
            self._email.send_temporary_password_email(
                user.email, user.first_name, temporary_password
            ),
        )
        return user

    # ── Login ────────────────────────────────────────────────────────────────

    async def _record_failed_login(
        self, user: UserDoc, now: datetime, reason: str, client: ClientInfo
    ) -> None:
        if user.locked_until is not None and user.locked_until <= now:
            # The previous lock ran out: this failure starts a new count
            await self._users.restart_failed_logins(user.id, now)
            attempts = 1
        else:
            attempts = await self._users.increment_failed_logins(user.id, now)

        if attempts >= self._settings.max_failed_logins:
            until = now + timedelta(seconds=self._settings.lockout_seconds)
            await self._users.lock_account(user.id, until, now)
            log.warning(
                "account_locked",
                user_id=str(user.id),
                attempts=attempts,
                locked_until=until.isoformat(),
            )
        else:
            log.info(
                "login_failed",
                user_id=str(user.id),
                reason=reason,
                attempts=attempts,
                ip=hash_ip(client.ip_address),
            )

    async def login(
        self, email: str, password: str, client: ClientInfo = ClientInfo()
    ) -> AuthResult:
        """Authenticate with email and password and open a new session.

        Checks run in a fixed order: existence, active, lock, OAuth-only,
        then password (unexpired temporary password first, then the regular
        hash). The lock is checked before any password comparison.
        """
        now = self._clock()
        user = await self._users.find_by_email(email)
        if user is None:
            log.info("login_failed", reason="unknown_email", ip=hash_ip(client.ip_address))
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

        if not user.is_active:
            raise AuthError(AuthErrorKind.ACCOUNT_DISABLED)
        if user.is_locked(now):
            log.info("login_refused", user_id=str(user.id), reason="locked")
            raise AuthError(AuthErrorKind.ACCOUNT_LOCKED)
        if user.is_oauth_only(now):
            raise AuthError(AuthErrorKind.USE_OAUTH_INSTEAD)

        verified = False
        is_temporary = False
        if user.has_valid_temporary_password(now):
            verified = await verify_password_async(password, user.temporary_password_hash)
            is_temporary = verified
        if not verified and user.password_hash:
            verified = await verify_password_async(password, user.password_hash)

        if user.has_expired_temporary_password(now):
            # No-op when the sweeper got there first
            purged = await self._users.clear_expired_temporary_password(user.id, now)
            log.info("expired_temporary_credential_cleared", user_id=str(user.id), purged=purged)
        if not verified and user.has_lapsed_temporary_credential(now):
            await self._record_failed_login(user, now, "temporary_expired", client)
            raise AuthError(AuthErrorKind.TEMPORARY_PASSWORD_EXPIRED)

        if not verified:
            await self._record_failed_login(user, now, "wrong_password", client)
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

        access_token, refresh_token, record = self._new_session(
            user.id, user.email, user.role, client, now
        )
        await self._users.record_login_success(
            user.id, record, now, self._settings.max_refresh_tokens
        )
        log.info(
            "login_succeeded",
            user_id=str(user.id),
            used_temporary_credential=is_temporary,
        )
        user = user.model_copy(
            update={"failed_login_attempts": 0, "locked_until": None, "last_login": now}
        )
        return AuthResult(
            user=user,
            access_token=access_token,
            refresh_token=refresh_token,
            is_temporary_password=is_temporary,
        )

    # ── Refresh / logout ─────────────────────────────────────────────────────

    async def refresh(
        self, refresh_token: Optional[str], client: ClientInfo = ClientInfo()
    ) -> TokenPair:
        """Exchange a refresh token for a new access/refresh pair.

        The presented token is consumed: after a successful rotation it is
        never accepted again.

        Raises:
            AuthError(INVALID_REFRESH_TOKEN): missing, unverifiable, unknown,
                expired or already-rotated token.
            AuthError(ACCOUNT_DISABLED): the owner has been deactivated.
        """
        if not refresh_token:
            raise AuthError(
                AuthErrorKind.INVALID_REFRESH_TOKEN, "Refresh token not provided"
            )
        try:
            claims = self._tokens.verify_refresh_token(refresh_token)
        except TokenVerificationError as e:
            log.info("refresh_rejected", reason=type(e).__name__)
            raise AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN) from None

        now = self._clock()
        old_hash = hash_token(refresh_token)
        user = await self._users.find_by_refresh_token(old_hash, now)
        if user is None or str(user.id) != claims["sub"]:
            log.info("refresh_rejected", reason="unknown_session")
            raise AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN)
        if not user.is_active:
            raise AuthError(AuthErrorKind.ACCOUNT_DISABLED)

        access_token, new_refresh_token, record = self._new_session(
            user.id, user.email, user.role, client, now
        )
        rotated = await self._users.rotate_refresh_token(
            user.id, old_hash, record, now, self._settings.max_refresh_tokens
        )
        if not rotated:
            log.warning("refresh_rejected", user_id=str(user.id), reason="already_rotated")
            raise AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN)

        log.info("token_refreshed", user_id=str(user.id))
        return TokenPair(access_token=access_token, refresh_token=new_refresh_token)

    async def logout(self, user_id: ObjectId, refresh_token: Optional[str]) -> None:
        """End one session. Without a refresh token there is nothing to revoke."""
        removed = False
        if refresh_token:
            removed = await self._users.remove_refresh_token(
                user_id, hash_token(refresh_token), self._clock()
            )
        log.info("logout", user_id=str(user_id), session_removed=removed)

    async def logout_all(self, user_id: ObjectId) -> None:
        await self._users.clear_refresh_tokens(user_id, self._clock())
        log.info("logout_all", user_id=str(user_id))

    # ── Access-token authentication ──────────────────────────────────────────

    async def authenticate(self, access_token: str) -> UserDoc:
        """Resolve a bearer access token to its active user."""
        try:
            claims = self._tokens.verify_access_token(access_token)
        except TokenVerificationError as e:
            raise AuthenticationError("Invalid or expired access token") from e

        user_id = to_object_id(claims["sub"])
        user = await self._users.find_by_id(user_id) if user_id else None
        if user is None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthError(AuthErrorKind.ACCOUNT_DISABLED)
        return user

    # ── Password reset / change ──────────────────────────────────────────────

    async def request_password_reset(self, email: str) -> None:
        """Issue a reset token for a known email. Unknown emails are a silent no-op."""
        user = await self._users.find_by_email(email)
        if user is None:
            log.info("password_reset_requested", known_account=False)
            return

        now = self._clock()
        reset_token = generate_reset_token()
        expires_at = now + timedelta(seconds=self._settings.reset_token_ttl_seconds)
        await self._users.set_reset_token(user.id, hash_token(reset_token), expires_at, now)
        log.info("password_reset_requested", known_account=True, user_id=str(user.id))

        reset_url = f"{self._frontend_url}/reset-password?token={reset_token}"
        self._send_in_background(
            "password_reset",
            self._email.send_password_reset_email(user.email, user.first_name, reset_url),
        )

    async def reset_password(self, reset_token: str, new_password: str) -> None:
        """Set a new password with a reset token and revoke every session.

        Raises:
            ValidationError: the new password fails the password policy.
            AuthError(INVALID_OR_EXPIRED_RESET_TOKEN): unknown, expired or used.
        """
        self._check_new_password(new_password, "password")

        now = self._clock()
        token_hash = hash_token(reset_token)
        user = await self._users.find_by_reset_token(token_hash, now)
        if user is None:
            raise AuthError(AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN)

        password_hash = await hash_password_async(new_password)
        if not await self._users.complete_password_reset(token_hash, password_hash, now):
            # Consumed or expired while we were hashing
            raise AuthError(AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN)

        log.info("password_reset_completed", user_id=str(user.id))
        self._send_in_background(
            "password_changed",
            self._email.send_password_changed_email(user.email, user.first_name),
        )

    async def change_password(
        self, user_id: ObjectId, current_password: str, new_password: str
    ) -> None:
        """Replace the password after checking the current one; signs out everywhere."""
        user = await self._require_user(user_id)
        self._check_new_password(new_password, "newPassword")

        now = self._clock()
        matches = False
        if user.password_hash:
            matches = await verify_password_async(current_password, user.password_hash)
        if not matches and user.has_valid_temporary_password(now):
            matches = await verify_password_async(
                current_password, user.temporary_password_hash
            )
        if not matches:
            raise AuthError(AuthErrorKind.WRONG_CURRENT_PASSWORD, field="currentPassword")

        password_hash = await hash_password_async(new_password)
        await self._users.change_password(user.id, password_hash, now)
        log.info("password_changed", user_id=str(user.id))
        self._send_in_background(
            "password_changed",
            self._email.send_password_changed_email(user.email, user.first_name),
        )

    # ── Profile ──────────────────────────────────────────────────────────────

    async def update_profile(
        self,
        user_id: ObjectId,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[Address] = None,
    ) -> UserDoc:
        """Update the editable profile fields; anything passed as None is left alone."""
        fields: dict = {}
        if first_name is not None:
            fields["first_name"] = first_name
        if last_name is not None:
            fields["last_name"] = last_name
        if phone is not None:
            fields["phone"] = phone
        if address is not None:
            fields["address"] = address.model_dump()

        if not fields:
            return await self._require_user(user_id)

        user = await self._users.update_profile(user_id, fields, self._clock())
        if user is None:
            raise NotFoundError("User not found")
        log.info("profile_updated", user_id=str(user_id), fields=sorted(fields))
        return user

    # ── Google sign-in ───────────────────────────────────────────────────────

    async def google_login(
        self, access_token: str, user_info: dict, client: ClientInfo = ClientInfo()
    ) -> AuthResult:
        """Sign in (or sign up) with a Google account.

        An existing account with the same email or Google id is linked and
        signed in; otherwise a new Google-only account is created together
        with its first session.
        """
        profile = extract_google_profile(user_info)
        if self._google_verifier is not None:
            await self._google_verifier.verify(access_token, profile)

        now = self._clock()
        user = await self._users.find_by_email_or_google_id(
            profile.email, profile.google_id
        )
        if user is None:
            created = await self._create_google_user(profile, client, now)
            if created is not None:
                return created
            # Lost an insert race: the account exists now
            user = await self._users.find_by_email_or_google_id(
                profile.email, profile.google_id
            )
            if user is None:
                raise AuthError(AuthErrorKind.INVALID_OAUTH_DATA)

        return await self._google_login_existing(user, profile, client, now)

    async def _create_google_user(
        self, profile: GoogleProfile, client: ClientInfo, now: datetime
    ) -> Optional[AuthResult]:
        user_id = ObjectId()
        refresh_token = self._tokens.issue_refresh_token(str(user_id))
        record = RefreshTokenRecord(
            token_hash=hash_token(refresh_token),
            created_at=now,
            expires_at=now + self._tokens.refresh_token_ttl,
            device_info=client.device_info,
            ip_address=client.ip_address,
        )
        user = UserDoc.new_google(
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            google_id=profile.google_id,
            picture=profile.picture,
            first_session=record,
            user_id=user_id,
            now=now,
        )
        try:
            await self._users.insert(user)
        except DuplicateKeyError:
            log.info("google_signup_raced", google_id=profile.google_id)
            return None

        access_token = self._tokens.issue_access_token(str(user_id), user.email, user.role)
        log.info("user_registered", user_id=str(user_id), auth_provider="google")
        return AuthResult(user=user, access_token=access_token, refresh_token=refresh_token)

    async def _google_login_existing(
        self,
        user: UserDoc,
        profile: GoogleProfile,
        client: ClientInfo,
        now: datetime,
    ) -> AuthResult:
        if not user.is_active:
            raise AuthError(AuthErrorKind.ACCOUNT_DISABLED)

        link_google_id = None if user.google_id else profile.google_id
        picture = profile.picture if profile.picture and not user.images else None

        access_token, refresh_token, record = self._new_session(
            user.id, user.email, user.role, client, now
        )
        await self._users.record_oauth_login(
            user.id,
            record,
            now,
            self._settings.max_refresh_tokens,
            link_google_id=link_google_id,
            picture=picture,
        )
        log.info(
            "google_login_succeeded",
            user_id=str(user.id),
            linked=link_google_id is not None,
        )

        update: dict = {"email_verified": True, "is_verified": True, "last_login": now}
        if link_google_id:
            update.update(google_id=link_google_id, auth_provider="google")
        if picture:
            update["images"] = [picture]
        return AuthResult(
            user=user.model_copy(update=update),
            access_token=access_token,
            refresh_token=refresh_token,
        )

    # ── Admin ────────────────────────────────────────────────────────────────

    async def list_users(self, role: Optional[str] = None) -> list[UserDoc]:
        return await self._users.list_users(role=role, limit=ADMIN_LIST_LIMIT)

    async def get_user(self, user_id: str) -> UserDoc:
        oid = to_object_id(user_id)
        if oid is None:
            raise NotFoundError("User not found")
        return await self._require_user(oid)

    async def update_user_status(
        self,
        user_id: str,
        *,
        is_active: Optional[bool] = None,
        role: Optional[str] = None,
    ) -> UserDoc:
        oid = to_object_id(user_id)
        user = (
            await self._users.update_status(
                oid, self._clock(), is_active=is_active, role=role
            )
            if oid
            else None
        )
        if user is None:
            raise NotFoundError("User not found")
        log.info(
            "user_status_updated",
            user_id=user_id,
            is_active=is_active,
            role=role,
        )
        return user

    async def delete_user(self, user_id: str) -> None:
        oid = to_object_id(user_id)
        if oid is None or not await self._users.delete(oid):
            raise NotFoundError("User not found")
        log.info("user_deleted", user_id=user_id)
