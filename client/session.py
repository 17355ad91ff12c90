"""Client-side session state.

SessionContext holds what the storefront knows about the signed-in user: the
short-lived access token (in memory only) and the cached profile. The refresh
token is deliberately absent; it lives in the HTTP client's cookie jar as an
httpOnly cookie and is only ever sent to the refresh endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

LOGIN_PAGE = "/signIn"

# Pages a signed-out visitor may sit on without being sent to LOGIN_PAGE
UNAUTHENTICATED_PAGES = frozenset(
    {"/signIn", "/signUp", "/forgot-password", "/reset-password"}
)


@dataclass
class SessionContext:
    access_token: Optional[str] = None
    user: Optional[dict[str, Any]] = None
    current_path: str = "/"

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    @property
    def on_unauthenticated_page(self) -> bool:
        return self.current_path in UNAUTHENTICATED_PAGES

    def set_access_token(self, token: Optional[str]) -> None:
        self.access_token = token or None

    def clear(self) -> None:
        """Forget the access token and the cached profile."""
        self.access_token = None
        self.user = None
