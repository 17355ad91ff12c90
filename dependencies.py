"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. The service graph is built once in create_app()
and stored on app.state; these providers only hand it out.

Authentication reads the access token from ``Authorization: Bearer`` only.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from config import AppSettings
from errors import AuthenticationError, ForbiddenError
from schemas.models.user import UserDoc
from services.auth_service import AuthService, ClientInfo


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_client_info(request: Request) -> ClientInfo:
    """Device and address recorded on refresh records for the session being opened."""
    return ClientInfo(
        device_info=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


def _bearer_token(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Access token is required")
    return token.strip()


async def get_current_user(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> UserDoc:
    """Resolve the caller from the bearer access token; 401 otherwise."""
    return await auth_service.authenticate(_bearer_token(request))


def require_roles(*roles: str) -> Callable:
    """Dependency factory: the caller must hold one of *roles* (403 otherwise)."""

    async def _check(user: UserDoc = Depends(get_current_user)) -> UserDoc:
        if user.role not in roles:
            raise ForbiddenError("Insufficient permissions")
        return user

    return _check
