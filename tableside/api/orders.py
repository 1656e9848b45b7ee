"""
Order endpoints.

Customers see and create only their own orders; the admin router exposes
every order, statistics and the status workflow.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_current_user, require_admin
from tableside.database import get_db
from tableside.models import User
from tableside.schemas import (
    CheckoutRequest,
    ErrorResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    RejectRequest,
    StatusUpdateRequest,
)
from tableside.services.checkout import CheckoutService
from tableside.services.orders import (
    OrderFilter,
    OrderService,
    parse_fulfillment_type,
    parse_status,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])
admin_router = APIRouter(prefix="/api/admin/orders", tags=["Admin Orders"])


def order_filter(
    status: Optional[str] = Query(None, description="PENDING, CONFIRMED, ..."),
    fulfillment_type: Optional[str] = Query(None, description="DELIVERY, PICKUP or DINE_IN"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> OrderFilter:
    return OrderFilter(
        status=parse_status(status) if status else None,
        fulfillment_type=parse_fulfillment_type(fulfillment_type) if fulfillment_type else None,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )


# =============================================================================
# CUSTOMER
# =============================================================================

@router.get("", response_model=OrderListResponse, summary="List My Orders")
async def list_my_orders(
    filters: OrderFilter = Depends(order_filter),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    service = OrderService(db)
    orders = await service.list_user_orders(user.id, filters)
    return OrderListResponse(
        total=await service.count_orders(filters, user_id=user.id),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@router.post(
    "/checkout",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Check Out Cart",
)
async def checkout(
    body: CheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Turn the caller's cart into a PENDING order and empty the cart."""
    order = await CheckoutService(db).checkout(
        user_id=user.id,
        restaurant_id=body.restaurant_id,
        fulfillment_type=body.fulfillment_type,
        fulfillment_details=body.fulfillment_details,
    )
    logger.info(f"Order #{order.id} placed by user #{user.id} ({order.total_amount})")
    return OrderResponse.model_validate(order)


@router.get("/{order_id}", response_model=OrderResponse, responses={404: {"model": ErrorResponse}})
async def get_my_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return OrderResponse.model_validate(await OrderService(db).get_order(order_id, user_id=user.id))


# =============================================================================
# ADMIN
# =============================================================================

@admin_router.get("", response_model=OrderListResponse, summary="List All Orders")
async def list_orders(
    filters: OrderFilter = Depends(order_filter),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    service = OrderService(db)
    orders = await service.list_orders(filters)
    return OrderListResponse(
        total=await service.count_orders(filters),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@admin_router.get("/stats", response_model=OrderStatsResponse)
async def order_stats(
    restaurant_id: int = Query(...),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderStatsResponse:
    return OrderStatsResponse.model_validate(await OrderService(db).order_stats(restaurant_id))


@admin_router.get("/{order_id}", response_model=OrderResponse, responses={404: {"model": ErrorResponse}})
async def get_order(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return OrderResponse.model_validate(await OrderService(db).get_order(order_id))


@admin_router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Update Order Status",
)
async def update_status(
    order_id: int,
    body: StatusUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await OrderService(db).update_status(order_id, body.status)
    return OrderResponse.model_validate(order)


@admin_router.post("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return OrderResponse.model_validate(await OrderService(db).confirm_order(order_id))


@admin_router.post("/{order_id}/reject", response_model=OrderResponse)
async def reject_order(
    order_id: int,
    body: Optional[RejectRequest] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    reason = body.reason if body else None
    return OrderResponse.model_validate(await OrderService(db).reject_order(order_id, reason))
