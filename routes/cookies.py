"""Refresh-token cookie helpers.

The refresh token is only ever sent as an httpOnly cookie; the access token
travels in JSON bodies and the Authorization header. In production the
cookie is Secure and SameSite=Strict, elsewhere Lax so the dev frontend on a
different port still sends it.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request, Response

from config import AppSettings

REFRESH_COOKIE_NAME = "refreshToken"


def _cookie_flags(settings: AppSettings) -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "strict" if settings.is_production else "lax",
        "path": "/",
    }


def set_refresh_cookie(response: Response, token: str, settings: AppSettings) -> None:
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        value=token,
        max_age=settings.jwt.refresh_token_ttl_seconds,
        **_cookie_flags(settings),
    )


def clear_refresh_cookie(response: Response, settings: AppSettings) -> None:
    response.delete_cookie(REFRESH_COOKIE_NAME, **_cookie_flags(settings))


def get_refresh_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(REFRESH_COOKIE_NAME) or None
