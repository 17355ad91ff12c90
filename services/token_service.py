"""
TokenService: JWT issuance and verification.

Access tokens and refresh tokens are HS256 JWTs signed with two independent
secrets. Each token carries a `type` claim and a random `jti`, so a refresh
token can never be presented as an access token (wrong key, wrong type) and
two tokens issued in the same second are still distinct strings.

Verification is all-or-nothing: callers get the full claim set or one of
the TokenVerificationError subclasses, never partial claims. Both issuing
and expiry checks read the same injected clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

import jwt

from config import JWTSettings
from shared.datetime_utils import utc_now
from shared.generators import generate_token_id

ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_REQUIRED_CLAIMS = ["sub", "type", "iss", "aud", "iat", "exp", "jti"]


class TokenVerificationError(Exception):
    """A presented token did not verify."""


class TokenExpiredError(TokenVerificationError):
    pass


class TokenInvalidError(TokenVerificationError):
    pass


class TokenService:
    def __init__(
        self,
        settings: JWTSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not settings.access_token_secret or not settings.refresh_token_secret:
            raise RuntimeError(
                "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must both be set"
            )
        if settings.access_token_secret == settings.refresh_token_secret:
            raise RuntimeError(
                "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be different"
            )
        self._access_secret = settings.access_token_secret
        self._refresh_secret = settings.refresh_token_secret
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._access_ttl = timedelta(seconds=settings.access_token_ttl_seconds)
        self._refresh_ttl = timedelta(seconds=settings.refresh_token_ttl_seconds)
        self._clock = clock

    @property
    def access_token_ttl(self) -> timedelta:
        return self._access_ttl

    @property
    def refresh_token_ttl(self) -> timedelta:
        """Lifetime shared by the refresh JWT, its server record and the cookie."""
        return self._refresh_ttl

    # ── Issue ────────────────────────────────────────────────────────────────

    def _claims(self, user_id: str, token_type: str, ttl: timedelta) -> dict:
        now = self._clock()
        return {
            "sub": str(user_id),
            "type": token_type,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "jti": generate_token_id(),
        }

    def issue_access_token(self, user_id: str, email: str, role: str) -> str:
        claims = self._claims(user_id, ACCESS_TOKEN_TYPE, self._access_ttl)
        claims["email"] = email
        claims["role"] = role
        return jwt.encode(claims, self._access_secret, algorithm=ALGORITHM)

    def issue_refresh_token(self, user_id: str) -> str:
        claims = self._claims(user_id, REFRESH_TOKEN_TYPE, self._refresh_ttl)
        return jwt.encode(claims, self._refresh_secret, algorithm=ALGORITHM)

    # ── Verify ───────────────────────────────────────────────────────────────

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                # exp is judged against the injected clock below
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise TokenInvalidError(str(exc)) from exc

        exp = claims["exp"]
        if not isinstance(exp, int) or isinstance(exp, bool):
            raise TokenInvalidError("Expiration Time claim (exp) must be an integer")
        if exp <= int(self._clock().timestamp()):
            raise TokenExpiredError("Token has expired")

        if claims.get("type") != expected_type:
            raise TokenInvalidError(f"Expected a {expected_type} token")
        return claims

    def verify_access_token(self, token: str) -> dict:
        """Return the claims of a valid access token.

        Raises:
            TokenExpiredError: the token is past its exp.
            TokenInvalidError: bad signature, issuer, audience, type or shape.
        """
        return self._decode(token, self._access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> dict:
        return self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)
