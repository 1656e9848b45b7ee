"""
User endpoints: the caller's own account under ``/api/users/me`` and
admin user management under ``/api/admin/users``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_current_user, require_admin
from tableside.database import get_db
from tableside.exceptions import ValidationError
from tableside.models import User
from tableside.schemas import (
    AdminUserResponse,
    ErrorResponse,
    MessageResponse,
    OrderListResponse,
    OrderResponse,
    PasswordChangeRequest,
    RoleUpdateRequest,
    UserDetailResponse,
    UserResponse,
    UserStatsResponse,
    UserUpdateRequest,
)
from tableside.services.common import UNSET
from tableside.services.orders import OrderService
from tableside.services.users import UserFilter, UserService, parse_role

router = APIRouter(prefix="/api/users", tags=["Users"])
admin_router = APIRouter(prefix="/api/admin/users", tags=["Admin Users"])


# =============================================================================
# SELF-SERVICE
# =============================================================================

@router.get("/me", response_model=UserResponse)
async def get_profile(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.patch(
    "/me",
    response_model=UserResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_profile(
    body: UserUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    provided = body.model_fields_set
    updated = await UserService(db).update_profile(
        user.id,
        name=body.name if "name" in provided else UNSET,
        email=body.email if "email" in provided else UNSET,
    )
    return UserResponse.model_validate(updated)


@router.post(
    "/me/password",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def change_password(
    body: PasswordChangeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await UserService(db).change_password(user.id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")


@router.get("/me/orders", response_model=OrderListResponse)
async def order_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    orders = await UserService(db).order_history(user.id, limit=limit, offset=offset)
    return OrderListResponse(
        total=await OrderService(db).count_orders(user_id=user.id),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


# =============================================================================
# ADMIN
# =============================================================================

@admin_router.get("", response_model=list[AdminUserResponse])
async def list_users(
    role: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[AdminUserResponse]:
    filters = UserFilter(
        role=parse_role(role) if role else None,
        search=search,
        limit=limit,
        offset=offset,
    )
    rows = await UserService(db).list_users(filters)
    return [
        AdminUserResponse(**UserResponse.model_validate(u).model_dump(), order_count=count)
        for u, count in rows
    ]


@admin_router.get("/stats", response_model=UserStatsResponse)
async def user_stats(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserStatsResponse:
    stats = await UserService(db).user_stats()
    return UserStatsResponse(
        total_users=stats.total_users,
        today_users=stats.today_users,
        admin_count=stats.admin_count,
        customer_count=stats.customer_count,
    )


@admin_router.get("/{user_id}", response_model=UserDetailResponse, responses={404: {"model": ErrorResponse}})
async def get_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserDetailResponse:
    """A user with their ten most recent orders."""
    service = UserService(db)
    user = await service.get_user(user_id)
    recent = await service.recent_orders(user_id)
    return UserDetailResponse(
        user=UserResponse.model_validate(user),
        recent_orders=[OrderResponse.model_validate(o) for o in recent],
    )


@admin_router.patch(
    "/{user_id}/role",
    response_model=UserResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_role(
    user_id: int,
    body: RoleUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    return UserResponse.model_validate(await UserService(db).update_role(user_id, body.role))


@admin_router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    if user_id == admin.id:
        raise ValidationError("You cannot delete your own account")
    await UserService(db).delete_user(user_id)
    return MessageResponse(message="User deleted")
