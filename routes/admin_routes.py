"""
Admin user management under /api/auth/users. Every route requires role admin.

GET    /users: list (optional ?role=), newest first, capped
GET    /users/{user_id}: one user
PUT    /users/{user_id}/status
DELETE /users/{user_id}
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dependencies import get_auth_service, require_roles
from schemas.dto.requests.auth import UpdateUserStatusRequest
from schemas.dto.responses.auth import (
    SuccessResponse,
    UserData,
    UserListData,
    UserResponse,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from schemas.models.user import Role
from services.auth_service import AuthService

router = APIRouter(
    prefix="/api/auth/users",
    tags=["admin"],
    dependencies=[Depends(require_roles(Role.ADMIN.value))],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)


@router.get("", response_model=SuccessResponse[UserListData])
async def list_users(
    role: Optional[Role] = Query(default=None),
    auth_service: AuthService = Depends(get_auth_service),
) -> SuccessResponse[UserListData]:
    users = await auth_service.list_users(role.value if role else None)
    return SuccessResponse[UserListData](
        data=UserListData(
            users=[UserResponse.from_user(u) for u in users], count=len(users)
        )
    )


@router.get("/{user_id}", response_model=SuccessResponse[UserData])
async def get_user(
    user_id: str,
    auth_service: AuthService = Depends(get_auth_service),
) -> SuccessResponse[UserData]:
    user = await auth_service.get_user(user_id)
    return SuccessResponse[UserData](data=UserData(user=UserResponse.from_user(user)))


@router.put("/{user_id}/status", response_model=SuccessResponse[UserData])
async def update_user_status(
    user_id: str,
    body: UpdateUserStatusRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SuccessResponse[UserData]:
    user = await auth_service.update_user_status(
        user_id,
        is_active=body.is_active,
        role=body.role.value if body.role else None,
    )
    return SuccessResponse[UserData](
        message="User updated successfully",
        data=UserData(user=UserResponse.from_user(user)),
    )


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.delete_user(user_id)
    return MessageResponse(message="User deleted successfully")
