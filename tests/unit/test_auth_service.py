"""Unit tests for AuthService, run against the in-memory user store."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest
from bson import ObjectId

from config import SweeperSettings
from errors import AuthenticationError, AuthError, AuthErrorKind, NotFoundError, ValidationError
from schemas.models.user import Address
from services.auth_service import AuthService, ClientInfo
from services.token_service import TokenService
from shared.crypto import hash_password, hash_token, verify_password
from tests.fakes import (
    STRONG_PASSWORD,
    FakeClock,
    FakeEmailProvider,
    FakeUserRepository,
    make_auth_settings,
    make_jwt_settings,
    seed_user,
)
from workers.expiry_sweeper import ExpirySweeper

NEW_PASSWORD = "N3w!Passw0rd"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo():
    return FakeUserRepository()


@pytest.fixture
def emails():
    return FakeEmailProvider()


@pytest.fixture
def tokens():
    return TokenService(make_jwt_settings())


@pytest.fixture
def service(repo, tokens, emails, clock):
    return AuthService(
        repo,
        tokens,
        emails,
        make_auth_settings(),
        frontend_url="https://shop.example/",
        clock=clock,
    )


async def _register(service, emails, email="jane@example.com"):
    user = await service.register(
        first_name="Jane", last_name="Doe", email=email, phone="+94771234567"
    )
    await service.drain()
    _, _, payload = emails.of_kind("temporary_password")[-1]
    return user, payload["password"]


def _kind(exc_info) -> AuthErrorKind:
    return exc_info.value.kind


# ── Registration ──────────────────────────────────────────────────────────────


class TestRegister:
    async def test_creates_local_user_with_temporary_password(self, service, repo, emails):
        user, temporary = await _register(service, emails, email="  Jane@Example.COM ")

        doc = repo.raw(user.id)
        assert doc["email"] == "jane@example.com"
        assert doc["role"] == "user"
        assert doc["auth_provider"] == "local"
        assert doc["is_active"] is True
        assert doc["email_verified"] is False
        assert doc["password_hash"] is None
        assert verify_password(temporary, doc["temporary_password_hash"])

    async def test_temporary_password_expires_in_24_hours(self, service, repo, emails, clock):
        user, _ = await _register(service, emails)
        expires = repo.raw(user.id)["temporary_password_expires_at"]
        assert expires == clock.now + timedelta(hours=24)

    async def test_temporary_password_shape(self, service, emails):
        _, temporary = await _register(service, emails)
        assert len(temporary) == 12
        assert any(c.isupper() for c in temporary)
        assert any(c.islower() for c in temporary)
        assert any(c.isdigit() for c in temporary)

    async def test_duplicate_email_is_case_insensitive(self, service, emails):
        await _register(service, emails, email="jane@example.com")
        with pytest.raises(AuthError) as exc:
            await service.register(
                first_name="Jane", last_name="Doe", email="JANE@example.com"
            )
        assert _kind(exc) is AuthErrorKind.DUPLICATE_EMAIL
        assert exc.value.status_code == 400

    async def test_insert_race_maps_to_duplicate_email(self, service, repo, clock, mocker):
        seed_user(repo, clock.now, email="jane@example.com")
        mocker.patch.object(repo, "find_by_email", AsyncMock(return_value=None))
        with pytest.raises(AuthError) as exc:
            await service.register(
                first_name="Jane", last_name="Doe", email="jane@example.com"
            )
        assert _kind(exc) is AuthErrorKind.DUPLICATE_EMAIL

    async def test_email_failure_does_not_fail_registration(self, repo, tokens, clock):
        service = AuthService(
            repo,
            tokens,
            FakeEmailProvider(fail=True),
            make_auth_settings(),
            frontend_url="https://shop.example",
            clock=clock,
        )
        user = await service.register(
            first_name="Jane", last_name="Doe", email="jane@example.com"
        )
        await service.drain()
        assert user.id in repo.docs

    async def test_slow_email_is_abandoned_after_timeout(self, repo, tokens, clock):
        class SlowEmail(FakeEmailProvider):
            async def send_temporary_password_email(self, *args, **kwargs):
                await asyncio.sleep(10)
                return True

        service = AuthService(
            repo,
            tokens,
            SlowEmail(),
            make_auth_settings(email_send_timeout_seconds=0.01),
            frontend_url="https://shop.example",
            clock=clock,
        )
        slow = service._email
        user = await service.register(first_name="Jane", last_name="Doe", email="j@example.com")
        await service.drain(timeout=1.0)
        assert user.id in repo.docs
        assert slow.sent == []


# ── Login ─────────────────────────────────────────────────────────────────────


class TestLogin:
    async def test_temporary_password_login(self, service, repo, emails, tokens):
        user, temporary = await _register(service, emails)

        result = await service.login("jane@example.com", temporary)

        assert result.is_temporary_password is True
        claims = tokens.verify_access_token(result.access_token)
        assert claims["sub"] == str(user.id)
        assert claims["role"] == "user"
        assert tokens.verify_refresh_token(result.refresh_token)["sub"] == str(user.id)
        records = repo.raw(user.id)["refresh_tokens"]
        assert [r["token_hash"] for r in records] == [hash_token(result.refresh_token)]

    async def test_temporary_password_stays_valid_until_expiry(self, service, emails):
        _, temporary = await _register(service, emails)
        await service.login("jane@example.com", temporary)
        again = await service.login("jane@example.com", temporary)
        assert again.is_temporary_password is True

    async def test_regular_password_login(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        result = await service.login("Jane@Example.com", STRONG_PASSWORD)
        assert result.is_temporary_password is False
        assert result.user.id == user.id
        assert repo.raw(user.id)["last_login"] == clock.now

    async def test_refresh_record_carries_client_info(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        await service.login(
            "jane@example.com",
            STRONG_PASSWORD,
            ClientInfo(device_info="pytest-agent", ip_address="10.0.0.1"),
        )
        record = repo.raw(user.id)["refresh_tokens"][0]
        assert record["device_info"] == "pytest-agent"
        assert record["ip_address"] == "10.0.0.1"
        assert record["expires_at"] == clock.now + timedelta(days=7)

    async def test_unknown_email_and_wrong_password_look_the_same(self, service, repo, clock):
        seed_user(repo, clock.now)
        with pytest.raises(AuthError) as unknown:
            await service.login("nobody@example.com", STRONG_PASSWORD)
        with pytest.raises(AuthError) as wrong:
            await service.login("jane@example.com", "Wrong!Passw0rd")
        assert _kind(unknown) is _kind(wrong) is AuthErrorKind.INVALID_CREDENTIALS
        assert unknown.value.message == wrong.value.message

    async def test_inactive_account(self, service, repo, clock):
        seed_user(repo, clock.now, is_active=False)
        with pytest.raises(AuthError) as exc:
            await service.login("jane@example.com", STRONG_PASSWORD)
        assert _kind(exc) is AuthErrorKind.ACCOUNT_DISABLED

    async def test_oauth_only_account(self, service, repo, clock):
        seed_user(repo, clock.now, password=None, auth_provider="google", google_id="g-1")
        with pytest.raises(AuthError) as exc:
            await service.login("jane@example.com", STRONG_PASSWORD)
        assert _kind(exc) is AuthErrorKind.USE_OAUTH_INSTEAD

    async def test_lockout_after_five_failures_then_unlock(self, service, repo, clock):
        user = seed_user(repo, clock.now)

        for attempt in range(1, 6):
            with pytest.raises(AuthError) as exc:
                await service.login("jane@example.com", "Wrong!Passw0rd")
            assert _kind(exc) is AuthErrorKind.INVALID_CREDENTIALS
            assert repo.raw(user.id)["failed_login_attempts"] == attempt

        assert repo.raw(user.id)["locked_until"] == clock.now + timedelta(hours=2)

        # Even the correct password is refused while locked
        with pytest.raises(AuthError) as exc:
            await service.login("jane@example.com", STRONG_PASSWORD)
        assert _kind(exc) is AuthErrorKind.ACCOUNT_LOCKED

        clock.advance(hours=2, seconds=1)
        result = await service.login("jane@example.com", STRONG_PASSWORD)

        assert result.user.failed_login_attempts == 0
        doc = repo.raw(user.id)
        assert doc["failed_login_attempts"] == 0
        assert "locked_until" not in doc

    async def test_failure_after_expired_lock_restarts_count(self, service, repo, clock):
        user = seed_user(
            repo,
            clock.now,
            failed_login_attempts=5,
            locked_until=clock.now - timedelta(minutes=1),
        )
        with pytest.raises(AuthError):
            await service.login("jane@example.com", "Wrong!Passw0rd")
        doc = repo.raw(user.id)
        assert doc["failed_login_attempts"] == 1
        assert "locked_until" not in doc

    async def test_expired_temporary_password(self, service, repo, clock):
        user = seed_user(
            repo,
            clock.now,
            password=None,
            temporary_password_hash=hash_password("TempPass1234"),
            temporary_password_expires_at=clock.now - timedelta(seconds=1),
        )
        with pytest.raises(AuthError) as exc:
            await service.login("jane@example.com", "TempPass1234")

        assert _kind(exc) is AuthErrorKind.TEMPORARY_PASSWORD_EXPIRED
        doc = repo.raw(user.id)
        assert "temporary_password_hash" not in doc
        assert "temporary_password_expires_at" not in doc
        assert doc["failed_login_attempts"] == 1

    async def test_expired_temporary_password_with_regular_password(self, service, repo, clock):
        user = seed_user(
            repo,
            clock.now,
            temporary_password_hash=hash_password("TempPass1234"),
            temporary_password_expires_at=clock.now - timedelta(seconds=1),
        )
        result = await service.login("jane@example.com", STRONG_PASSWORD)
        assert result.is_temporary_password is False
        assert "temporary_password_hash" not in repo.raw(user.id)

    async def test_refresh_records_capped_at_five(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        results = [await service.login("jane@example.com", STRONG_PASSWORD) for _ in range(7)]

        hashes = [r["token_hash"] for r in repo.raw(user.id)["refresh_tokens"]]
        assert len(hashes) == 5
        assert hashes == [hash_token(r.refresh_token) for r in results[-5:]]


class TestLoginAfterSweep:
    async def test_purged_temporary_password_is_reported_expired(
        self, service, repo, emails, clock
    ):
        user, temporary = await _register(service, emails, email="a@x.com")
        clock.advance(hours=25)
        counts = await ExpirySweeper(repo, SweeperSettings(), clock=clock).run_once()
        assert counts["temporary_passwords"] == 1

        with pytest.raises(AuthError) as exc:
            await service.login("a@x.com", temporary)

        assert _kind(exc) is AuthErrorKind.TEMPORARY_PASSWORD_EXPIRED
        assert repo.raw(user.id)["failed_login_attempts"] == 1

    async def test_purged_temporary_password_falls_through_to_regular(
        self, service, repo, clock
    ):
        seed_user(
            repo,
            clock.now,
            temporary_password_hash=hash_password("TempPass1234"),
            temporary_password_expires_at=clock.now + timedelta(hours=24),
        )
        clock.advance(hours=25)
        await ExpirySweeper(repo, SweeperSettings(), clock=clock).run_once()

        with pytest.raises(AuthError) as exc:
            await service.login("jane@example.com", "TempPass1234")
        assert _kind(exc) is AuthErrorKind.INVALID_CREDENTIALS

        result = await service.login("jane@example.com", STRONG_PASSWORD)
        assert result.is_temporary_password is False

    async def test_wrong_password_with_live_temporary_password(self, service, emails):
        await _register(service, emails)
        with pytest.raises(AuthError) as exc:
            await service.login("jane@example.com", "Wrong1234abc")
        assert _kind(exc) is AuthErrorKind.INVALID_CREDENTIALS


# ── Refresh / logout ──────────────────────────────────────────────────────────


class TestRefresh:
    async def test_rotation_is_one_time(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        first = await service.login("jane@example.com", STRONG_PASSWORD)

        pair = await service.refresh(first.refresh_token)
        assert pair.refresh_token != first.refresh_token

        with pytest.raises(AuthError) as exc:
            await service.refresh(first.refresh_token)
        assert _kind(exc) is AuthErrorKind.INVALID_REFRESH_TOKEN

        again = await service.refresh(pair.refresh_token)
        assert again.access_token
        hashes = [r["token_hash"] for r in repo.raw(user.id)["refresh_tokens"]]
        assert hashes == [hash_token(again.refresh_token)]

    async def test_concurrent_rotation_only_one_wins(self, service, repo, clock):
        seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)

        results = await asyncio.gather(
            service.refresh(session.refresh_token),
            service.refresh(session.refresh_token),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, AuthError)]
        assert len(failures) == 1
        assert failures[0].kind is AuthErrorKind.INVALID_REFRESH_TOKEN

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    async def test_missing_or_garbage_token(self, service, token):
        with pytest.raises(AuthError) as exc:
            await service.refresh(token)
        assert _kind(exc) is AuthErrorKind.INVALID_REFRESH_TOKEN
        assert exc.value.status_code == 401

    async def test_access_token_is_not_a_refresh_token(self, service, repo, clock):
        seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)
        with pytest.raises(AuthError) as exc:
            await service.refresh(session.access_token)
        assert _kind(exc) is AuthErrorKind.INVALID_REFRESH_TOKEN

    async def test_expired_record_is_rejected(self, service, repo, clock):
        seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)
        clock.advance(days=8)
        with pytest.raises(AuthError) as exc:
            await service.refresh(session.refresh_token)
        assert _kind(exc) is AuthErrorKind.INVALID_REFRESH_TOKEN

    async def test_deactivated_owner_is_rejected(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)
        repo.raw(user.id)["is_active"] = False
        with pytest.raises(AuthError) as exc:
            await service.refresh(session.refresh_token)
        assert _kind(exc) is AuthErrorKind.ACCOUNT_DISABLED


class TestLogout:
    async def test_logout_removes_only_that_session(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        keep = await service.login("jane@example.com", STRONG_PASSWORD)
        drop = await service.login("jane@example.com", STRONG_PASSWORD)

        await service.logout(user.id, drop.refresh_token)

        hashes = [r["token_hash"] for r in repo.raw(user.id)["refresh_tokens"]]
        assert hashes == [hash_token(keep.refresh_token)]
        with pytest.raises(AuthError):
            await service.refresh(drop.refresh_token)

    async def test_logout_without_cookie_is_harmless(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        await service.login("jane@example.com", STRONG_PASSWORD)
        await service.logout(user.id, None)
        assert len(repo.raw(user.id)["refresh_tokens"]) == 1

    async def test_logout_all(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        sessions = [await service.login("jane@example.com", STRONG_PASSWORD) for _ in range(3)]
        await service.logout_all(user.id)
        assert repo.raw(user.id)["refresh_tokens"] == []
        for s in sessions:
            with pytest.raises(AuthError):
                await service.refresh(s.refresh_token)


class TestAuthenticate:
    async def test_valid_access_token(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)
        assert (await service.authenticate(session.access_token)).id == user.id

    async def test_refresh_token_is_not_an_access_token(self, service, repo, clock):
        seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)
        with pytest.raises(AuthenticationError):
            await service.authenticate(session.refresh_token)

    async def test_deleted_user(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)
        del repo.docs[user.id]
        with pytest.raises(AuthenticationError):
            await service.authenticate(session.access_token)


# ── Password reset / change ───────────────────────────────────────────────────


async def _request_reset(service, emails, email="jane@example.com") -> str:
    await service.request_password_reset(email)
    await service.drain()
    _, _, payload = emails.of_kind("password_reset")[-1]
    url = urlparse(payload["url"])
    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://shop.example/reset-password"
    return parse_qs(url.query)["token"][0]


class TestPasswordReset:
    async def test_unknown_email_is_silent(self, service, emails):
        await service.request_password_reset("nobody@example.com")
        await service.drain()
        assert emails.sent == []

    async def test_request_stores_only_the_digest(self, service, repo, emails, clock):
        user = seed_user(repo, clock.now)
        token = await _request_reset(service, emails)

        doc = repo.raw(user.id)
        assert len(token) == 64
        assert doc["reset_token_hash"] == hash_token(token)
        assert doc["reset_token_expires_at"] == clock.now + timedelta(minutes=10)

    async def test_reset_sets_password_and_revokes_sessions(self, service, repo, emails, clock):
        user = seed_user(
            repo,
            clock.now,
            temporary_password_hash=hash_password("TempPass1234"),
            temporary_password_expires_at=clock.now + timedelta(hours=1),
        )
        session = await service.login("jane@example.com", STRONG_PASSWORD)
        token = await _request_reset(service, emails)

        await service.reset_password(token, NEW_PASSWORD)
        await service.drain()

        doc = repo.raw(user.id)
        assert verify_password(NEW_PASSWORD, doc["password_hash"])
        assert doc["refresh_tokens"] == []
        for field in (
            "reset_token_hash",
            "reset_token_expires_at",
            "temporary_password_hash",
            "temporary_password_expires_at",
        ):
            assert field not in doc
        with pytest.raises(AuthError) as exc:
            await service.refresh(session.refresh_token)
        assert _kind(exc) is AuthErrorKind.INVALID_REFRESH_TOKEN
        assert (await service.login("jane@example.com", NEW_PASSWORD)).user.id == user.id
        assert len(emails.of_kind("password_changed")) == 1

    async def test_token_is_single_use(self, service, repo, emails, clock):
        seed_user(repo, clock.now)
        token = await _request_reset(service, emails)
        await service.reset_password(token, NEW_PASSWORD)
        with pytest.raises(AuthError) as exc:
            await service.reset_password(token, "An0ther!Passw0rd")
        assert _kind(exc) is AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN
        assert exc.value.status_code == 400

    async def test_expired_token(self, service, repo, emails, clock):
        seed_user(repo, clock.now)
        token = await _request_reset(service, emails)
        clock.advance(minutes=11)
        with pytest.raises(AuthError) as exc:
            await service.reset_password(token, NEW_PASSWORD)
        assert _kind(exc) is AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN

    async def test_weak_password_rejected_before_lookup(self, service, repo, emails, clock):
        seed_user(repo, clock.now)
        token = await _request_reset(service, emails)
        with pytest.raises(ValidationError) as exc:
            await service.reset_password(token, "short")
        assert exc.value.field == "password"
        assert "At least 8 characters" in exc.value.details


class TestChangePassword:
    async def test_change_with_regular_password(self, service, repo, emails, clock):
        user = seed_user(repo, clock.now)
        await service.login("jane@example.com", STRONG_PASSWORD)

        await service.change_password(user.id, STRONG_PASSWORD, NEW_PASSWORD)
        await service.drain()

        doc = repo.raw(user.id)
        assert verify_password(NEW_PASSWORD, doc["password_hash"])
        assert doc["refresh_tokens"] == []
        assert len(emails.of_kind("password_changed")) == 1

    async def test_change_with_temporary_password(self, service, repo, emails):
        user, temporary = await _register(service, emails)
        await service.change_password(user.id, temporary, NEW_PASSWORD)

        doc = repo.raw(user.id)
        assert "temporary_password_hash" not in doc
        result = await service.login("jane@example.com", NEW_PASSWORD)
        assert result.is_temporary_password is False

    async def test_wrong_current_password(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        with pytest.raises(AuthError) as exc:
            await service.change_password(user.id, "Wrong!Passw0rd", NEW_PASSWORD)
        assert _kind(exc) is AuthErrorKind.WRONG_CURRENT_PASSWORD
        assert exc.value.status_code == 400


# ── Profile ───────────────────────────────────────────────────────────────────


class TestProfile:
    async def test_update_only_given_fields(self, service, repo, clock):
        user = seed_user(repo, clock.now, phone="+94770000000")
        updated = await service.update_profile(
            user.id,
            first_name="Janet",
            address=Address(city="Colombo", country="LK"),
        )
        assert updated.first_name == "Janet"
        assert updated.last_name == "Doe"
        assert updated.phone == "+94770000000"
        assert updated.address.city == "Colombo"

    async def test_no_changes_returns_current(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        assert (await service.update_profile(user.id)).id == user.id

    async def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            await service.update_profile(ObjectId(), first_name="Ghost")


# ── Google sign-in ────────────────────────────────────────────────────────────

GOOGLE_INFO = {
    "email": "Jane@Example.com",
    "name": "Jane Q Doe",
    "picture": "https://lh3.example/p.png",
    "id": "google-123",
}


class TestGoogleLogin:
    async def test_creates_new_google_user(self, service, repo, tokens):
        result = await service.google_login("ya29.token", GOOGLE_INFO)

        doc = repo.raw(result.user.id)
        assert doc["email"] == "jane@example.com"
        assert doc["google_id"] == "google-123"
        assert doc["auth_provider"] == "google"
        assert doc["password_hash"] is None
        assert doc["first_name"] == "Jane"
        assert doc["last_name"] == "Q Doe"
        assert doc["images"] == ["https://lh3.example/p.png"]
        assert doc["email_verified"] is True
        assert doc["role"] == "user"
        assert [r["token_hash"] for r in doc["refresh_tokens"]] == [
            hash_token(result.refresh_token)
        ]
        assert tokens.verify_access_token(result.access_token)["sub"] == str(result.user.id)

    async def test_links_existing_local_account(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        result = await service.google_login("ya29.token", GOOGLE_INFO)

        assert result.user.id == user.id
        doc = repo.raw(user.id)
        assert doc["google_id"] == "google-123"
        assert doc["auth_provider"] == "google"
        assert doc["images"] == ["https://lh3.example/p.png"]
        assert len(repo.docs) == 1
        # The password still works after linking
        await service.login("jane@example.com", STRONG_PASSWORD)

    async def test_existing_images_are_kept(self, service, repo, clock):
        user = seed_user(repo, clock.now, images=["https://cdn.example/me.png"])
        await service.google_login("ya29.token", GOOGLE_INFO)
        assert repo.raw(user.id)["images"] == ["https://cdn.example/me.png"]

    async def test_sub_is_accepted_as_subject_id(self, service, repo):
        info = {"email": "sub@example.com", "sub": "google-sub-1"}
        result = await service.google_login("ya29.token", info)
        assert repo.raw(result.user.id)["google_id"] == "google-sub-1"
        assert result.user.first_name == "User"

    @pytest.mark.parametrize(
        "info",
        [{"name": "No Email", "id": "g-1"}, {"email": "noid@example.com"}],
        ids=["missing_email", "missing_id"],
    )
    async def test_missing_required_fields(self, service, info):
        with pytest.raises(AuthError) as exc:
            await service.google_login("ya29.token", info)
        assert _kind(exc) is AuthErrorKind.INVALID_OAUTH_DATA
        assert exc.value.status_code == 400

    async def test_inactive_account(self, service, repo, clock):
        seed_user(repo, clock.now, is_active=False)
        with pytest.raises(AuthError) as exc:
            await service.google_login("ya29.token", GOOGLE_INFO)
        assert _kind(exc) is AuthErrorKind.ACCOUNT_DISABLED

    async def test_insert_race_falls_back_to_existing(self, service, repo, clock, mocker):
        user = seed_user(repo, clock.now)
        real_lookup = repo.find_by_email_or_google_id
        mocker.patch.object(
            repo,
            "find_by_email_or_google_id",
            AsyncMock(side_effect=[None, await real_lookup("jane@example.com", "x")]),
        )
        result = await service.google_login("ya29.token", GOOGLE_INFO)
        assert result.user.id == user.id
        assert len(repo.docs) == 1

    async def test_verifier_rejection_propagates(self, repo, tokens, emails, clock):
        verifier = AsyncMock()
        verifier.verify.side_effect = AuthError(AuthErrorKind.INVALID_OAUTH_DATA)
        service = AuthService(
            repo,
            tokens,
            emails,
            make_auth_settings(),
            frontend_url="https://shop.example",
            google_verifier=verifier,
            clock=clock,
        )
        with pytest.raises(AuthError) as exc:
            await service.google_login("forged", GOOGLE_INFO)
        assert _kind(exc) is AuthErrorKind.INVALID_OAUTH_DATA
        assert repo.docs == {}


# ── Admin ─────────────────────────────────────────────────────────────────────


class TestAdminOperations:
    async def test_list_users_filters_by_role(self, service, repo, clock):
        seed_user(repo, clock.now, email="a@example.com", role="admin")
        seed_user(repo, clock.now, email="u@example.com")
        admins = await service.list_users("admin")
        assert [u.email for u in admins] == ["a@example.com"]
        assert len(await service.list_users()) == 2

    async def test_get_user_with_malformed_id(self, service):
        with pytest.raises(NotFoundError):
            await service.get_user("not-an-object-id")

    async def test_deactivation_revokes_sessions(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        session = await service.login("jane@example.com", STRONG_PASSWORD)

        updated = await service.update_user_status(str(user.id), is_active=False)

        assert updated.is_active is False
        assert repo.raw(user.id)["refresh_tokens"] == []
        with pytest.raises(AuthError):
            await service.refresh(session.refresh_token)

    async def test_role_change(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        updated = await service.update_user_status(str(user.id), role="moderator")
        assert updated.role == "moderator"

    async def test_delete_user(self, service, repo, clock):
        user = seed_user(repo, clock.now)
        await service.delete_user(str(user.id))
        assert user.id not in repo.docs
        with pytest.raises(NotFoundError):
            await service.delete_user(str(user.id))
