"""
Cart endpoints. Every route acts on the caller's own cart.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_current_user
from tableside.database import get_db
from tableside.models import User
from tableside.schemas import (
    CartItemCreate,
    CartItemResponse,
    CartItemUpdate,
    CartResponse,
    CartTotalsResponse,
    ErrorResponse,
    MessageResponse,
)
from tableside.services.cart import CartService, compute_totals
from tableside.services.common import UNSET
from tableside.services.pricing import Selection

router = APIRouter(prefix="/api/cart", tags=["Cart"])


@router.get("", response_model=CartResponse)
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CartResponse:
    """Cart lines (newest first) with totals."""
    items = await CartService(db).get_cart(user.id)
    return CartResponse(
        items=[CartItemResponse.model_validate(item) for item in items],
        totals=CartTotalsResponse.model_validate(compute_totals(items)),
    )


@router.get("/totals", response_model=CartTotalsResponse)
async def get_totals(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CartTotalsResponse:
    return CartTotalsResponse.model_validate(await CartService(db).totals(user.id))


@router.post(
    "/items",
    response_model=CartItemResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Add Item to Cart",
)
async def add_item(
    body: CartItemCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CartItemResponse:
    selections = [Selection(type=c.type, reference_id=c.reference_id) for c in body.customizations]
    item = await CartService(db).add(
        user_id=user.id,
        product_id=body.product_id,
        quantity=body.quantity,
        customizations=selections,
        note=body.note,
    )
    return CartItemResponse.model_validate(item)


@router.patch(
    "/items/{item_id}",
    response_model=CartItemResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_item(
    item_id: int,
    body: CartItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CartItemResponse:
    provided = body.model_fields_set
    item = await CartService(db).update_item(
        item_id,
        user.id,
        quantity=body.quantity if "quantity" in provided else UNSET,
        note=body.note if "note" in provided else UNSET,
    )
    return CartItemResponse.model_validate(item)


@router.delete("/items/{item_id}", response_model=MessageResponse, responses={404: {"model": ErrorResponse}})
async def remove_item(
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await CartService(db).remove(item_id, user.id)
    return MessageResponse(message="Item removed from cart")


@router.delete("", response_model=MessageResponse)
async def clear_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    removed = await CartService(db).clear(user.id)
    return MessageResponse(message=f"Cart cleared ({removed} items removed)")
