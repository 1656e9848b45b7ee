"""
Order Aggregate

Creates orders as frozen copies of cart lines and drives them through the
status state machine:

    PENDING          -> CONFIRMED | CANCELLED
    CONFIRMED        -> PREPARING | CANCELLED
    PREPARING        -> READY | CANCELLED
    READY            -> OUT_FOR_DELIVERY | COMPLETED
    OUT_FOR_DELIVERY -> COMPLETED
    COMPLETED, CANCELLED are terminal

Status writes are compare-and-set on the status that was read (under a row
lock where the backend supports one), so two racing transitions from the
same state cannot both succeed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from tableside.models import (
    CartItem,
    FulfillmentDetails,
    FulfillmentType,
    Order,
    OrderItem,
    OrderItemCustomization,
    OrderStatus,
    Restaurant,
    Table,
    utcnow,
)
from tableside.services.common import clean_text, commit, quantize_money

logger = logging.getLogger(__name__)


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.COMPLETED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

ACTIVE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
)

# Orders in these statuses block deleting their owner (user, restaurant)
OPEN_ORDER_STATUSES = ACTIVE_STATUSES + (OrderStatus.OUT_FOR_DELIVERY,)


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in ORDER_TRANSITIONS[current]


def parse_status(value: Union[OrderStatus, str, None]) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).upper())
    except ValueError:
        raise ValidationError("Invalid status")


def parse_fulfillment_type(value: Union[FulfillmentType, str, None]) -> FulfillmentType:
    if isinstance(value, FulfillmentType):
        return value
    try:
        return FulfillmentType(str(value).upper())
    except ValueError:
        raise ValidationError("Valid fulfillment type is required")


@dataclass
class OrderFilter:
    """
    Filter for order listings. Every field is optional.

    Attributes:
        status: only orders currently in this status
        fulfillment_type: only DELIVERY / PICKUP / DINE_IN orders
        date_from: created at or after this instant
        date_to: created at or before this instant
        limit: page size
        offset: rows to skip
    """
    status: Optional[OrderStatus] = None
    fulfillment_type: Optional[FulfillmentType] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: int = 20
    offset: int = 0

    def where(self, query):
        """Add the filter criteria only (usable for counts)."""
        if self.status is not None:
            query = query.where(Order.status == self.status)
        if self.fulfillment_type is not None:
            query = query.where(Order.fulfillment_type == self.fulfillment_type)
        if self.date_from is not None:
            query = query.where(Order.created_at >= self.date_from)
        if self.date_to is not None:
            query = query.where(Order.created_at <= self.date_to)
        return query

    def apply(self, query):
        """Criteria plus newest-first ordering and paging."""
        return (
            self.where(query)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(self.offset)
            .limit(self.limit)
        )


@dataclass(frozen=True)
class OrderStats:
    total_orders: int
    today_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: Decimal


def _field(details: Any, name: str) -> Any:
    if details is None:
        return None
    if isinstance(details, Mapping):
        return details.get(name)
    return getattr(details, name, None)


def validate_fulfillment(fulfillment_type: FulfillmentType, details: Any) -> None:
    """
    Check the type-specific fulfillment fields.

    DELIVERY needs street and phone number, PICKUP a pickup time, DINE_IN a
    table and a reservation time.
    """
    if fulfillment_type == FulfillmentType.DELIVERY:
        if not _field(details, "street") or not _field(details, "phone_number"):
            raise ValidationError("Delivery address and phone number are required")
    elif fulfillment_type == FulfillmentType.PICKUP:
        if not _field(details, "pickup_time"):
            raise ValidationError("Pickup time is required")
    elif fulfillment_type == FulfillmentType.DINE_IN:
        if not _field(details, "table_id"):
            raise ValidationError("Table selection is required for dine-in")
        if not _field(details, "reservation_time"):
            raise ValidationError("Reservation time is required")


class OrderService:
    """Order creation, lookup and status transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order(self, order_id: int, user_id: Optional[int] = None) -> Order:
        """
        Fetch one order, optionally scoped to its owner.

        Raises:
            NotFoundError: order missing or owned by another user
        """
        query = select(Order).where(Order.id == order_id)
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        result = await self.db.execute(query.execution_options(populate_existing=True))
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def list_user_orders(self, user_id: int, filters: Optional[OrderFilter] = None) -> list[Order]:
        filters = filters or OrderFilter()
        result = await self.db.execute(filters.apply(select(Order).where(Order.user_id == user_id)))
        return list(result.scalars().all())

    async def list_orders(self, filters: Optional[OrderFilter] = None) -> list[Order]:
        filters = filters or OrderFilter(limit=50)
        result = await self.db.execute(filters.apply(select(Order)))
        return list(result.scalars().all())

    async def count_orders(self, filters: Optional[OrderFilter] = None, user_id: Optional[int] = None) -> int:
        """Number of orders matching ``filters``, ignoring paging."""
        query = select(func.count(Order.id))
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        if filters is not None:
            query = filters.where(query)
        return (await self.db.execute(query)).scalar() or 0

    async def order_stats(self, restaurant_id: int) -> OrderStats:
        """Counts by status bucket and completed revenue for one restaurant."""
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        scoped = select(func.count(Order.id)).where(Order.restaurant_id == restaurant_id)

        total = (await self.db.execute(scoped)).scalar() or 0
        today_count = (await self.db.execute(scoped.where(Order.created_at >= today))).scalar() or 0
        pending = (await self.db.execute(scoped.where(Order.status.in_(ACTIVE_STATUSES)))).scalar() or 0
        completed = (
            await self.db.execute(scoped.where(Order.status == OrderStatus.COMPLETED))
        ).scalar() or 0
        cancelled = (
            await self.db.execute(scoped.where(Order.status == OrderStatus.CANCELLED))
        ).scalar() or 0

        revenue = (
            await self.db.execute(
                select(func.sum(Order.total_amount)).where(
                    Order.restaurant_id == restaurant_id,
                    Order.status == OrderStatus.COMPLETED,
                )
            )
        ).scalar()

        return OrderStats(
            total_orders=total,
            today_orders=today_count,
            pending_orders=pending,
            completed_orders=completed,
            cancelled_orders=cancelled,
            total_revenue=quantize_money(Decimal(str(revenue or 0))),
        )

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_order(
        self,
        user_id: int,
        restaurant_id: int,
        fulfillment_type: Union[FulfillmentType, str],
        fulfillment_details: Any,
        cart_items: Iterable[CartItem],
        total_amount: Union[Decimal, str],
    ) -> Order:
        """
        Materialise cart lines into a new PENDING order.

        ``total_amount`` is the cart total computed by the caller when the
        cart was loaded. It is stored as given and not recomputed from the
        copied lines.

        Order, items, customizations and fulfillment details are written in
        a single commit.
        """
        if not user_id:
            raise ValidationError("User ID is required")
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")

        kind = parse_fulfillment_type(fulfillment_type)
        cart_items = list(cart_items or [])
        if not cart_items:
            raise ValidationError("Cart is empty")
        validate_fulfillment(kind, fulfillment_details)

        if await self.db.get(Restaurant, restaurant_id) is None:
            raise NotFoundError("Restaurant not found")

        foreign = sorted(
            {item.product.name for item in cart_items if item.product.restaurant_id != restaurant_id}
        )
        if foreign:
            raise ValidationError(
                "Cart contains products from another restaurant",
                detail=", ".join(foreign),
            )

        table_id = _field(fulfillment_details, "table_id")
        if kind == FulfillmentType.DINE_IN:
            table = await self.db.get(Table, table_id)
            if table is None or table.restaurant_id != restaurant_id:
                raise NotFoundError("Table not found")

        order = Order(
            user_id=user_id,
            restaurant_id=restaurant_id,
            fulfillment_type=kind,
            total_amount=quantize_money(Decimal(str(total_amount))),
            status=OrderStatus.PENDING,
        )
        order.items = [self._snapshot_item(item) for item in cart_items]

        if fulfillment_details is not None:
            order.fulfillment = FulfillmentDetails(
                contact_name=clean_text(_field(fulfillment_details, "contact_name")),
                phone_number=clean_text(_field(fulfillment_details, "phone_number")),
                street=clean_text(_field(fulfillment_details, "street")),
                building=clean_text(_field(fulfillment_details, "building")),
                state=clean_text(_field(fulfillment_details, "state")),
                location_note=clean_text(_field(fulfillment_details, "location_note")),
                pickup_time=_field(fulfillment_details, "pickup_time"),
                reservation_time=_field(fulfillment_details, "reservation_time"),
                table_id=table_id if kind == FulfillmentType.DINE_IN else None,
            )

        self.db.add(order)
        await commit(self.db, "create order")

        logger.info(
            f"Order #{order.id} created for user {user_id} "
            f"({kind.value}, {len(order.items)} lines, total {order.total_amount})"
        )
        return await self.get_order(order.id)

    @staticmethod
    def _snapshot_item(item: CartItem) -> OrderItem:
        """Deep copy of a cart line; no reference back to the cart survives."""
        copy = OrderItem(
            product_id=item.product_id,
            product_name_snapshot=item.product.name,
            quantity=item.quantity,
            base_price_snapshot=item.base_price_snapshot,
            final_price_snapshot=item.final_price_snapshot,
            note=item.note,
        )
        copy.customizations = [
            OrderItemCustomization(
                type=c.type,
                reference_id=c.reference_id,
                name_snapshot=c.name_snapshot,
                price_impact=c.price_impact,
            )
            for c in item.customizations
        ]
        return copy

    # =========================================================================
    # STATUS MACHINE
    # =========================================================================

    async def update_status(self, order_id: int, new_status: Union[OrderStatus, str]) -> Order:
        """
        Move an order to ``new_status``.

        Entering COMPLETED stamps ``paid_at`` unless it is already set.

        Raises:
            ValidationError: unknown status value
            NotFoundError: order does not exist
            InvalidTransitionError: not allowed from the current status
            ConflictError: another request changed the status first
        """
        requested = parse_status(new_status)

        result = await self.db.execute(
            select(Order.status, Order.paid_at).where(Order.id == order_id).with_for_update()
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Order not found")
        current, paid_at = row

        if not can_transition(current, requested):
            await self.db.rollback()
            raise InvalidTransitionError(current.value, requested.value)

        values = {"status": requested, "updated_at": utcnow()}
        if requested == OrderStatus.COMPLETED and paid_at is None:
            values["paid_at"] = utcnow()

        written = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if written.rowcount != 1:
            await self.db.rollback()
            raise ConflictError(f"Order #{order_id} was modified concurrently; retry")

        await commit(self.db, "update order status")
        logger.info(f"Order #{order_id}: {current.value} -> {requested.value}")
        return await self.get_order(order_id)

    async def confirm_order(self, order_id: int) -> Order:
        return await self.update_status(order_id, OrderStatus.CONFIRMED)

    async def reject_order(self, order_id: int, reason: Optional[str] = None) -> Order:
        """
        Cancel an order.

        The reason is logged only; there is no column or audit record for it.
        """
        order = await self.update_status(order_id, OrderStatus.CANCELLED)
        # TODO: persist the rejection reason once orders get a status-change audit table
        if reason:
            logger.info(f"Order #{order_id} rejected: {reason}")
        return order
