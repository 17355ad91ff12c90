"""Google sign-in helpers.

The storefront performs the Google OAuth dance in the browser and posts the
resulting access token plus the userinfo payload. This module turns that
payload into a GoogleProfile at the boundary and, when a client id is
configured, checks the access token against Google's tokeninfo endpoint so
the posted subject id cannot be forged.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from errors import AuthError, AuthErrorKind
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"

_DEFAULT_FIRST_NAME = "User"


@dataclass(frozen=True)
class GoogleProfile:
    google_id: str
    email: str
    first_name: str
    last_name: str
    picture: Optional[str] = None


def extract_google_profile(user_info: Dict[str, Any]) -> GoogleProfile:
    """Build a GoogleProfile from a Google userinfo payload.

    The userinfo API returns the subject as ``id``; ID-token claims call it
    ``sub``. Either is accepted, nothing else is.

    Raises:
        AuthError(INVALID_OAUTH_DATA): email or subject id missing.
    """
    email = (user_info.get("email") or "").strip().lower()
    if not email:
        raise AuthError(
            AuthErrorKind.INVALID_OAUTH_DATA,
            "Invalid Google authentication data: Email is required",
            field="userInfo.email",
        )

    google_id = user_info.get("id") or user_info.get("sub")
    if not google_id:
        raise AuthError(
            AuthErrorKind.INVALID_OAUTH_DATA,
            "Invalid Google authentication data: Google ID (id or sub) is required",
            field="userInfo.id",
        )

    name = (user_info.get("name") or "").strip()
    parts = name.split() if name else []
    first_name = parts[0] if parts else _DEFAULT_FIRST_NAME
    last_name = " ".join(parts[1:])

    return GoogleProfile(
        google_id=str(google_id),
        email=email,
        first_name=first_name,
        last_name=last_name,
        picture=user_info.get("picture") or None,
    )


class GoogleTokenVerifier:
    """Checks a Google access token against tokeninfo.

    A verifier without a client id is disabled: verify() logs a warning and
    returns without contacting Google.
    """

    def __init__(self, client_id: str, http_client: HttpClient) -> None:
        self._client_id = client_id
        self._http = http_client

    @property
    def enabled(self) -> bool:
        return bool(self._client_id)

    async def verify(self, access_token: str, profile: GoogleProfile) -> None:
        """Raise AuthError(INVALID_OAUTH_DATA) unless the token belongs to profile."""
        if not self.enabled:
            log.warning("google_token_check_skipped", reason="client_id_not_configured")
            return

        try:
            response = await self._http.get(
                GOOGLE_TOKENINFO_URL, params={"access_token": access_token}
            )
        except httpx.HTTPError as e:
            log.error(
                "google_tokeninfo_request_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise AuthError(AuthErrorKind.INVALID_OAUTH_DATA) from e

        if response.status_code != 200:
            log.warning("google_tokeninfo_rejected", status_code=response.status_code)
            raise AuthError(AuthErrorKind.INVALID_OAUTH_DATA)

        info = response.json()
        audience = info.get("aud") or info.get("azp")
        subject = info.get("sub") or info.get("user_id")
        if audience != self._client_id or subject != profile.google_id:
            log.warning(
                "google_tokeninfo_mismatch",
                audience_matches=audience == self._client_id,
                subject_matches=subject == profile.google_id,
            )
            raise AuthError(AuthErrorKind.INVALID_OAUTH_DATA)
