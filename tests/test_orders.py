"""Order creation, snapshots and the status state machine."""

import itertools
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tableside.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from tableside.models import FulfillmentType, Order, OrderStatus, Restaurant
from tableside.services.cart import CartService, compute_totals
from tableside.services.orders import ORDER_TRANSITIONS, OrderService, can_transition
from tableside.services.pricing import Selection

PICKUP = {"contact_name": "Jane", "pickup_time": datetime(2026, 11, 1, 12, 30)}

INVALID_TRANSITIONS = [
    (current, requested)
    for current, requested in itertools.product(OrderStatus, OrderStatus)
    if requested not in ORDER_TRANSITIONS[current]
]


async def place_order(db, user, menu, kind="PICKUP", details=PICKUP) -> Order:
    cart = CartService(db)
    await cart.add(user.id, menu["product"].id, quantity=2, customizations=[Selection("EXTRA", menu["sauce"].id)])
    items = await cart.get_cart(user.id)
    return await OrderService(db).create_order(
        user_id=user.id,
        restaurant_id=menu["restaurant"].id,
        fulfillment_type=kind,
        fulfillment_details=details,
        cart_items=items,
        total_amount=compute_totals(items).total_amount,
    )


async def force_status(db, order_id: int, status: OrderStatus, paid_at=None) -> None:
    order = await OrderService(db).get_order(order_id)
    order.status = status
    order.paid_at = paid_at
    await db.commit()


# =============================================================================
# TRANSITION TABLE
# =============================================================================

def test_terminal_statuses_have_no_exits():
    assert ORDER_TRANSITIONS[OrderStatus.COMPLETED] == frozenset()
    assert ORDER_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()


def test_happy_path_is_allowed():
    path = [
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.COMPLETED,
    ]
    for current, requested in zip(path, path[1:]):
        assert can_transition(current, requested)
    assert can_transition(OrderStatus.READY, OrderStatus.COMPLETED)
    assert not can_transition(OrderStatus.READY, OrderStatus.CANCELLED)


# =============================================================================
# CREATION
# =============================================================================

async def test_create_order_copies_cart(db, customer, menu):
    order = await place_order(db, customer, menu)

    assert order.status == OrderStatus.PENDING
    assert order.fulfillment_type == FulfillmentType.PICKUP
    assert order.total_amount == Decimal("27.98")
    assert order.paid_at is None

    (line,) = order.items
    assert line.product_name_snapshot == "Chicken Gyro"
    assert line.quantity == 2
    assert line.base_price_snapshot == Decimal("12.99")
    assert line.final_price_snapshot == Decimal("13.99")
    assert [c.name_snapshot for c in line.customizations] == ["Extra sauce"]
    assert order.fulfillment.contact_name == "Jane"
    assert order.fulfillment.table_id is None


async def test_order_snapshot_ignores_later_catalog_changes(db, customer, menu):
    order = await place_order(db, customer, menu)
    order_id = order.id

    menu["product"].base_price = Decimal("99.00")
    menu["product"].name = "Renamed"
    await db.commit()
    db.expunge_all()

    order = await OrderService(db).get_order(order_id)
    assert order.total_amount == Decimal("27.98")
    assert order.items[0].final_price_snapshot == Decimal("13.99")
    assert order.items[0].product_name_snapshot == "Chicken Gyro"


@pytest.mark.parametrize(
    "kind, details, message",
    [
        ("DELIVERY", {"street": "1 Main St"}, "Delivery address and phone number are required"),
        ("DELIVERY", {"phone_number": "555-0100"}, "Delivery address and phone number are required"),
        ("PICKUP", {"contact_name": "Jane"}, "Pickup time is required"),
        ("DINE_IN", {"reservation_time": datetime(2026, 11, 1, 19)}, "Table selection is required for dine-in"),
        ("DINE_IN", {"table_id": 1}, "Reservation time is required"),
        ("TAKEAWAY", PICKUP, "Valid fulfillment type is required"),
    ],
)
async def test_create_order_validates_fulfillment(db, customer, menu, kind, details, message):
    with pytest.raises(ValidationError) as exc_info:
        await place_order(db, customer, menu, kind=kind, details=details)
    assert exc_info.value.message == message
    assert (await db.execute(select(func.count(Order.id)))).scalar() == 0


async def test_create_order_requires_items(db, customer, menu):
    with pytest.raises(ValidationError, match="Cart is empty"):
        await OrderService(db).create_order(
            user_id=customer.id,
            restaurant_id=menu["restaurant"].id,
            fulfillment_type=FulfillmentType.PICKUP,
            fulfillment_details=PICKUP,
            cart_items=[],
            total_amount=Decimal("0"),
        )


async def test_create_order_unknown_restaurant(db, customer, menu):
    cart = CartService(db)
    await cart.add(customer.id, menu["product"].id)
    with pytest.raises(NotFoundError, match="Restaurant not found"):
        await OrderService(db).create_order(
            user_id=customer.id,
            restaurant_id=9999,
            fulfillment_type="PICKUP",
            fulfillment_details=PICKUP,
            cart_items=await cart.get_cart(customer.id),
            total_amount=Decimal("12.99"),
        )


async def test_create_order_rejects_products_from_another_restaurant(db, customer, menu):
    other = Restaurant(name="Taverna Across Town")
    db.add(other)
    await db.commit()

    cart = CartService(db)
    await cart.add(customer.id, menu["product"].id)
    with pytest.raises(ValidationError, match="Cart contains products from another restaurant") as exc_info:
        await OrderService(db).create_order(
            user_id=customer.id,
            restaurant_id=other.id,
            fulfillment_type="PICKUP",
            fulfillment_details=PICKUP,
            cart_items=await cart.get_cart(customer.id),
            total_amount=Decimal("12.99"),
        )
    assert exc_info.value.detail == "Chicken Gyro"
    assert (await db.execute(select(func.count(Order.id)))).scalar() == 0


async def test_dine_in_records_table(db, customer, menu, tables):
    reservation = datetime(2026, 11, 1, 19, 0)
    order = await place_order(
        db, customer, menu, kind="dine_in",
        details={"table_id": tables[1].id, "reservation_time": reservation},
    )
    assert order.fulfillment_type == FulfillmentType.DINE_IN
    assert order.fulfillment.table_id == tables[1].id
    assert order.fulfillment.reservation_time == reservation


async def test_dine_in_unknown_table(db, customer, menu):
    with pytest.raises(NotFoundError, match="Table not found"):
        await place_order(
            db, customer, menu, kind="DINE_IN",
            details={"table_id": 9999, "reservation_time": datetime(2026, 11, 1, 19)},
        )


# =============================================================================
# STATUS MACHINE
# =============================================================================

async def test_full_delivery_lifecycle(db, customer, menu):
    order = await place_order(
        db, customer, menu, kind="DELIVERY",
        details={"street": "1 Main St", "phone_number": "555-0100"},
    )
    service = OrderService(db)

    for status in ("CONFIRMED", "PREPARING", "READY", "OUT_FOR_DELIVERY", "COMPLETED"):
        order = await service.update_status(order.id, status)
        assert order.status == OrderStatus(status)

    assert order.paid_at is not None


@pytest.mark.parametrize("current, requested", INVALID_TRANSITIONS)
async def test_invalid_transitions_are_rejected(db, customer, menu, current, requested):
    order = await place_order(db, customer, menu)
    order_id = order.id
    await force_status(db, order_id, current)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await OrderService(db).update_status(order_id, requested)

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == f"Cannot transition from {current.value} to {requested.value}"
    assert (await OrderService(db).get_order(order_id)).status == current


async def test_unknown_status_value(db, customer, menu):
    order = await place_order(db, customer, menu)
    with pytest.raises(ValidationError, match="Invalid status"):
        await OrderService(db).update_status(order.id, "SHIPPED")


async def test_update_missing_order(db):
    with pytest.raises(NotFoundError, match="Order not found"):
        await OrderService(db).update_status(9999, OrderStatus.CONFIRMED)


async def test_completion_keeps_existing_paid_at(db, customer, menu):
    order = await place_order(db, customer, menu)
    paid = datetime(2026, 1, 1, 12, 0)
    await force_status(db, order.id, OrderStatus.READY, paid_at=paid)

    order = await OrderService(db).update_status(order.id, OrderStatus.COMPLETED)
    assert order.paid_at == paid


async def test_second_identical_transition_loses(session_maker, db, customer, menu):
    order = await place_order(db, customer, menu)
    order_id = order.id

    async with session_maker() as first, session_maker() as second:
        await OrderService(first).confirm_order(order_id)
        with pytest.raises(InvalidTransitionError):
            await OrderService(second).confirm_order(order_id)


class PausingSession:
    """Runs ``after_first_read`` once, right after the first statement returns."""

    def __init__(self, session, after_first_read):
        self.session = session
        self.after_first_read = after_first_read

    async def execute(self, statement, *args, **kwargs):
        result = await self.session.execute(statement, *args, **kwargs)
        if self.after_first_read is not None:
            hook, self.after_first_read = self.after_first_read, None
            await hook()
        return result

    def __getattr__(self, name):
        return getattr(self.session, name)


async def test_interleaved_transition_loses_compare_and_set(session_maker, db, customer, menu):
    order = await place_order(db, customer, menu)
    order_id = order.id

    async def rival_confirms():
        async with session_maker() as rival:
            await OrderService(rival).confirm_order(order_id)

    async with session_maker() as slow:
        # Both requests read PENDING; the rival writes first
        with pytest.raises(ConflictError, match="was modified concurrently"):
            await OrderService(PausingSession(slow, rival_confirms)).update_status(
                order_id, OrderStatus.CANCELLED
            )

    async with session_maker() as fresh:
        assert (await OrderService(fresh).get_order(order_id)).status == OrderStatus.CONFIRMED


async def test_reject_cancels(db, customer, menu):
    order = await place_order(db, customer, menu)
    order = await OrderService(db).reject_order(order.id, reason="Out of stock")
    assert order.status == OrderStatus.CANCELLED


async def test_owner_scoping(db, customer, menu):
    order = await place_order(db, customer, menu)
    service = OrderService(db)

    assert (await service.get_order(order.id, user_id=customer.id)).id == order.id
    with pytest.raises(NotFoundError):
        await service.get_order(order.id, user_id=customer.id + 100)


async def test_listing_and_stats(db, customer, menu):
    first = await place_order(db, customer, menu)
    second = await place_order(db, customer, menu)
    first_id, second_id = first.id, second.id
    service = OrderService(db)
    await force_status(db, first_id, OrderStatus.READY)
    await service.update_status(first_id, OrderStatus.COMPLETED)

    orders = await service.list_user_orders(customer.id)
    assert {o.id for o in orders} == {first_id, second_id}
    assert await service.count_orders(user_id=customer.id) == 2

    stats = await service.order_stats(menu["restaurant"].id)
    assert stats.total_orders == 2
    assert stats.pending_orders == 1
    assert stats.completed_orders == 1
    assert stats.total_revenue == Decimal("27.98")
