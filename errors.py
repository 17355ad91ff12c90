"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

Credential-lifecycle failures are raised as AuthError carrying an
AuthErrorKind. _AUTH_ERROR_STATUS is the one place that decides which HTTP
status each kind produces; route handlers never translate them case by case.

Non-AppError exceptions are logged with full context and returned as a bare
500 (with Sentry reporting in production).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {
            "success": False,
            "message": self.message,
            "code": self.error_code,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class AuthErrorKind(str, Enum):
    DUPLICATE_EMAIL = "duplicate_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DISABLED = "account_disabled"
    ACCOUNT_LOCKED = "account_locked"
    USE_OAUTH_INSTEAD = "use_oauth_instead"
    TEMPORARY_PASSWORD_EXPIRED = "temporary_password_expired"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    INVALID_OR_EXPIRED_RESET_TOKEN = "invalid_or_expired_reset_token"
    INVALID_OAUTH_DATA = "invalid_oauth_data"
    WRONG_CURRENT_PASSWORD = "wrong_current_password"


_AUTH_ERROR_STATUS: dict[AuthErrorKind, int] = {
    AuthErrorKind.DUPLICATE_EMAIL: 400,
    AuthErrorKind.INVALID_CREDENTIALS: 401,
    AuthErrorKind.ACCOUNT_DISABLED: 401,
    AuthErrorKind.ACCOUNT_LOCKED: 401,
    AuthErrorKind.USE_OAUTH_INSTEAD: 401,
    AuthErrorKind.TEMPORARY_PASSWORD_EXPIRED: 401,
    AuthErrorKind.INVALID_REFRESH_TOKEN: 401,
    AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN: 400,
    AuthErrorKind.INVALID_OAUTH_DATA: 400,
    AuthErrorKind.WRONG_CURRENT_PASSWORD: 400,
}

# User-facing messages. INVALID_CREDENTIALS deliberately covers both
# "no such user" and "wrong password".
_AUTH_ERROR_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.DUPLICATE_EMAIL: "User with this email already exists",
    AuthErrorKind.INVALID_CREDENTIALS: "Invalid email or password",
    AuthErrorKind.ACCOUNT_DISABLED: "Account is deactivated",
    AuthErrorKind.ACCOUNT_LOCKED: (
        "Account is temporarily locked due to too many failed login attempts. "
        "Please try again later."
    ),
    AuthErrorKind.USE_OAUTH_INSTEAD: (
        "This account was created with Google Sign-In. "
        "Please use Google Sign-In to log in."
    ),
    AuthErrorKind.TEMPORARY_PASSWORD_EXPIRED: (
        "Your temporary password has expired. "
        "Please use the password reset feature to set a new password."
    ),
    AuthErrorKind.INVALID_REFRESH_TOKEN: "Invalid or expired refresh token",
    AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN: "Invalid or expired reset token",
    AuthErrorKind.INVALID_OAUTH_DATA: "Invalid Google authentication data",
    AuthErrorKind.WRONG_CURRENT_PASSWORD: "Current password is incorrect",
}


def auth_error_status(kind: AuthErrorKind) -> int:
    return _AUTH_ERROR_STATUS[kind]


class AuthError(AppError):
    """A credential-lifecycle failure; the status code follows from ``kind``."""

    def __init__(
        self,
        kind: AuthErrorKind,
        message: Optional[str] = None,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(
            message or _AUTH_ERROR_MESSAGES[kind], field=field, details=details
        )
        self.kind = kind
        self.status_code = auth_error_status(kind)
        self.error_code = kind.value


def _validation_details(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        # loc is ("body", "email") for body fields; drop the location prefix
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return details


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = _validation_details(exc)
        error = ValidationError(
            "Validation failed",
            field=details[0]["field"] if details else None,
            details=details,
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "An internal server error occurred.",
                "code": "internal_error",
            },
        )
