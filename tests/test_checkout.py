"""Cart to order orchestration."""

import logging
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tableside.exceptions import NotFoundError, UnexpectedError, ValidationError
from tableside.models import Order, OrderStatus
from tableside.services.cart import CartService
from tableside.services.checkout import CheckoutService
from tableside.services.pricing import Selection

PICKUP = {"contact_name": "Jane", "pickup_time": datetime(2026, 11, 1, 12, 30)}


class FailingCart(CartService):
    async def clear(self, user_id: int) -> int:
        raise UnexpectedError("Failed to clear cart")


async def fill_cart(db, user, menu) -> None:
    cart = CartService(db)
    await cart.add(user.id, menu["product"].id, quantity=2, customizations=[Selection("EXTRA", menu["sauce"].id)])
    await cart.add(user.id, menu["product"].id, customizations=[Selection("REMOVED_COMPONENT", menu["olives"].id)])


async def count_orders(db) -> int:
    return (await db.execute(select(func.count(Order.id)))).scalar()


async def test_checkout_creates_order_and_clears_cart(db, customer, menu):
    await fill_cart(db, customer, menu)

    order = await CheckoutService(db).checkout(customer.id, menu["restaurant"].id, "PICKUP", PICKUP)

    assert order.status == OrderStatus.PENDING
    assert order.total_amount == Decimal("40.47")
    assert len(order.items) == 2
    assert await CartService(db).get_cart(customer.id) == []


async def test_empty_cart_creates_nothing(db, customer, menu):
    with pytest.raises(ValidationError, match="Cart is empty"):
        await CheckoutService(db).checkout(customer.id, menu["restaurant"].id, "PICKUP", PICKUP)
    assert await count_orders(db) == 0


async def test_invalid_details_keep_the_cart(db, customer, menu):
    await fill_cart(db, customer, menu)

    with pytest.raises(ValidationError, match="Pickup time is required"):
        await CheckoutService(db).checkout(customer.id, menu["restaurant"].id, "PICKUP", {"contact_name": "Jane"})

    assert await count_orders(db) == 0
    assert len(await CartService(db).get_cart(customer.id)) == 2


async def test_unknown_restaurant_keeps_the_cart(db, customer, menu):
    await fill_cart(db, customer, menu)

    with pytest.raises(NotFoundError):
        await CheckoutService(db).checkout(customer.id, 9999, "PICKUP", PICKUP)

    assert await count_orders(db) == 0
    assert len(await CartService(db).get_cart(customer.id)) == 2


async def test_failed_cart_clear_still_returns_order(db, customer, menu, caplog):
    await fill_cart(db, customer, menu)
    user_id = customer.id
    service = CheckoutService(db, cart=FailingCart(db))

    with caplog.at_level(logging.WARNING, logger="tableside.services.checkout"):
        order = await service.checkout(user_id, menu["restaurant"].id, "PICKUP", PICKUP)

    assert order.id is not None
    assert order.total_amount == Decimal("40.47")
    assert f"Order #{order.id} created but cart for user {user_id} was not cleared" in caplog.text
    assert await count_orders(db) == 1
    assert len(await CartService(db).get_cart(user_id)) == 2


async def test_checkout_is_per_user(db, customer, menu):
    from tests.conftest import make_user

    other = await make_user(db, "other@test.com")
    await fill_cart(db, customer, menu)
    await CartService(db).add(other.id, menu["product"].id)

    await CheckoutService(db).checkout(customer.id, menu["restaurant"].id, "PICKUP", PICKUP)

    assert len(await CartService(db).get_cart(other.id)) == 1
