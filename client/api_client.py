"""
Async API client for the storefront.

Wraps httpx.AsyncClient with the session rules the frontend relies on:

- every request carries ``Authorization: Bearer <access token>`` when the
  SessionContext holds one
- the refresh token is only in the cookie jar (httpOnly cookie set by the
  server) and is sent to /api/auth/refresh-token by the jar itself
- a 401 from a protected endpoint triggers exactly one silent refresh and
  retry; public endpoints never do
- when the refresh fails (or the retry is still 401) the session is cleared
  and ``navigate(LOGIN_PAGE)`` is called unless the user is already on a
  signed-out page

Failures surface as ApiClientError carrying the server's message only.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import httpx

from client.session import LOGIN_PAGE, SessionContext
from shared.logging import get_logger

log = get_logger(__name__)

REFRESH_PATH = "/api/auth/refresh-token"

PUBLIC_ENDPOINTS = (
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/request-password-reset",
    "/api/auth/reset-password",
    "/api/auth/google",
    REFRESH_PATH,
)


class ApiClientError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def is_public_endpoint(path: str) -> bool:
    return any(path.startswith(endpoint) for endpoint in PUBLIC_ENDPOINTS)


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class ApiClient:
    def __init__(
        self,
        base_url: str,
        session: Optional[SessionContext] = None,
        navigate: Optional[Callable[[str], None]] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.session = session or SessionContext()
        self._navigate = navigate
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )
        self._refresh_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # ── Transport ────────────────────────────────────────────────────────────

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.session.access_token:
            headers["Authorization"] = f"Bearer {self.session.access_token}"
        return await self._client.request(method, path, headers=headers, **kwargs)

    async def _call_refresh_endpoint(self) -> bool:
        try:
            response = await self._client.post(REFRESH_PATH)
        except httpx.HTTPError as e:
            log.warning("session_refresh_error", error=str(e), error_type=type(e).__name__)
            return False

        body = _json_body(response)
        if response.status_code != 200 or not isinstance(body, dict):
            return False
        access_token = (body.get("data") or {}).get("accessToken")
        if not body.get("success") or not access_token:
            return False
        self.session.set_access_token(access_token)
        return True

    async def _refresh_after_401(self, stale_token: Optional[str]) -> bool:
        async with self._refresh_lock:
            # A concurrent request already rotated the session
            if self.session.access_token and self.session.access_token != stale_token:
                return True
            return await self._call_refresh_endpoint()

    def _expire_session(self) -> None:
        self.session.clear()
        log.info("session_expired", current_path=self.session.current_path)
        if self._navigate is not None and not self.session.on_unauthenticated_page:
            self._navigate(LOGIN_PAGE)

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        body = _json_body(response)
        if response.is_success:
            return body
        message = None
        if isinstance(body, dict):
            message = body.get("message")
        raise ApiClientError(
            response.status_code, message or response.reason_phrase or "Request failed"
        )

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            ApiClientError: non-2xx response (after the one silent retry).
        """
        stale_token = self.session.access_token
        response = await self._send(method, path, **kwargs)

        if response.status_code == 401 and not is_public_endpoint(path):
            if await self._refresh_after_401(stale_token):
                response = await self._send(method, path, **kwargs)
                if response.status_code == 401:
                    self._expire_session()
            else:
                self._expire_session()

        return self._unwrap(response)

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    # ── Session operations ───────────────────────────────────────────────────

    async def restore_session(self) -> bool:
        """Try to resume a session from the refresh cookie alone.

        Returns True with the access token hydrated, otherwise clears the
        session (including the cached profile) and returns False.
        """
        if await self._call_refresh_endpoint():
            return True
        self.session.clear()
        return False

    def _start_session(self, body: dict) -> None:
        data = body.get("data") or {}
        self.session.set_access_token(data.get("accessToken"))
        self.session.user = data.get("user")

    async def login(self, email: str, password: str) -> dict:
        body = await self.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        self._start_session(body)
        return body

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str] = None,
    ) -> dict:
        payload = {"firstName": first_name, "lastName": last_name, "email": email}
        if phone:
            payload["phone"] = phone
        return await self.post("/api/auth/register", json=payload)

    async def google_login(self, token: str, user_info: dict) -> dict:
        body = await self.post(
            "/api/auth/google", json={"token": token, "userInfo": user_info}
        )
        self._start_session(body)
        return body

    async def _end_session(self, path: str) -> dict:
        try:
            return await self.post(path)
        finally:
            self.session.clear()
            self._client.cookies.clear()

    async def logout(self) -> dict:
        return await self._end_session("/api/auth/logout")

    async def logout_all(self) -> dict:
        return await self._end_session("/api/auth/logout-all")

    async def get_profile(self) -> dict:
        body = await self.get("/api/auth/profile")
        self.session.user = (body.get("data") or {}).get("user")
        return body
