"""Outbound HTTP client shared by the mail and Google sign-in integrations."""

import time
from typing import Any

import httpx

from shared.logging import get_logger

log = get_logger(__name__)

USER_AGENT = "marketplace-auth/1.0"


class HttpClient:
    """Async httpx wrapper labelled with the upstream it talks to.

    Each upstream gets its own instance so timeouts stay independent. Transport
    failures are logged with the label and elapsed time, then re-raised.
    """

    def __init__(self, service: str, timeout: float = 5.0) -> None:
        self.service = service
        self._client = httpx.AsyncClient(
            timeout=timeout, headers={"User-Agent": USER_AGENT}
        )

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        started = time.perf_counter()
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log.warning(
                "upstream_request_failed",
                service=self.service,
                method=method,
                error_type=type(e).__name__,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            raise

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
