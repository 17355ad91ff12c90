"""
Authentication endpoints under /api/auth.

POST /register, /login, /refresh-token, /logout, /logout-all,
/request-password-reset, /reset-password, /google
PUT  /change-password
GET/PUT /profile

Handlers only translate between HTTP and AuthService. AuthError and the
other AppError subclasses propagate to the handlers in errors.py. Session
cookies are set or cleared here, never in the service.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from config import AppSettings
from dependencies import (
    get_auth_service,
    get_client_info,
    get_current_user,
    get_settings,
)
from routes.cookies import clear_refresh_cookie, get_refresh_cookie, set_refresh_cookie
from schemas.dto.requests.auth import (
    ChangePasswordRequest,
    GoogleLoginRequest,
    LoginRequest,
    RegisterRequest,
    RequestPasswordResetRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
)
from schemas.dto.responses.auth import (
    AccessTokenData,
    AuthSessionData,
    SuccessResponse,
    UserData,
    UserResponse,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from schemas.models.user import Address, UserDoc
from services.auth_service import AuthResult, AuthService, ClientInfo

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
)

PASSWORD_RESET_REQUESTED_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


def _session_response(
    result: AuthResult, response: Response, settings: AppSettings, message: str
) -> SuccessResponse[AuthSessionData]:
    set_refresh_cookie(response, result.refresh_token, settings)
    return SuccessResponse[AuthSessionData](
        message=message,
        data=AuthSessionData(
            user=UserResponse.from_user(result.user),
            access_token=result.access_token,
            is_temporary_password=result.is_temporary_password,
        ),
    )


@router.post("/register", status_code=201, response_model=SuccessResponse[UserData])
async def register(
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SuccessResponse[UserData]:
    user = await auth_service.register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone=body.phone,
    )
    return SuccessResponse[UserData](
        message=(
            "User registered successfully. "
            "A temporary password has been sent to your email."
        ),
        data=UserData(user=UserResponse.from_user(user)),
    )


@router.post("/login", response_model=SuccessResponse[AuthSessionData])
async def login(
    body: LoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
    client: ClientInfo = Depends(get_client_info),
) -> SuccessResponse[AuthSessionData]:
    result = await auth_service.login(body.email, body.password, client)
    return _session_response(result, response, settings, "Login successful")


@router.post("/google", response_model=SuccessResponse[AuthSessionData])
async def google_login(
    body: GoogleLoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
    client: ClientInfo = Depends(get_client_info),
) -> SuccessResponse[AuthSessionData]:
    result = await auth_service.google_login(body.token, body.user_info, client)
    return _session_response(result, response, settings, "Google authentication successful")


@router.post("/refresh-token", response_model=SuccessResponse[AccessTokenData])
async def refresh_token(
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
    client: ClientInfo = Depends(get_client_info),
) -> SuccessResponse[AccessTokenData]:
    pair = await auth_service.refresh(get_refresh_cookie(request), client)
    set_refresh_cookie(response, pair.refresh_token, settings)
    return SuccessResponse[AccessTokenData](
        message="Token refreshed successfully",
        data=AccessTokenData(access_token=pair.access_token),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    user: UserDoc = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> MessageResponse:
    await auth_service.logout(user.id, get_refresh_cookie(request))
    clear_refresh_cookie(response, settings)
    return MessageResponse(message="Logout successful")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    response: Response,
    user: UserDoc = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> MessageResponse:
    await auth_service.logout_all(user.id)
    clear_refresh_cookie(response, settings)
    return MessageResponse(message="Logged out from all devices")


@router.post("/request-password-reset", response_model=MessageResponse)
async def request_password_reset(
    body: RequestPasswordResetRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.request_password_reset(body.email)
    return MessageResponse(message=PASSWORD_RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.reset_password(body.token, body.password)
    return MessageResponse(
        message="Password reset successful. Please log in with your new password."
    )


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    response: Response,
    user: UserDoc = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> MessageResponse:
    await auth_service.change_password(user.id, body.current_password, body.new_password)
    clear_refresh_cookie(response, settings)
    return MessageResponse(
        message="Password changed successfully. Please log in again."
    )


@router.get("/profile", response_model=SuccessResponse[UserData])
async def get_profile(
    user: UserDoc = Depends(get_current_user),
) -> SuccessResponse[UserData]:
    return SuccessResponse[UserData](data=UserData(user=UserResponse.from_user(user)))


@router.put("/profile", response_model=SuccessResponse[UserData])
async def update_profile(
    body: UpdateProfileRequest,
    user: UserDoc = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> SuccessResponse[UserData]:
    updated = await auth_service.update_profile(
        user.id,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        address=Address(**body.address.model_dump()) if body.address else None,
    )
    return SuccessResponse[UserData](
        message="Profile updated successfully",
        data=UserData(user=UserResponse.from_user(updated)),
    )
