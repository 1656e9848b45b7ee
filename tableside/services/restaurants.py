"""
Restaurant management: profile CRUD and the tenant teardown.

Deleting a restaurant removes every dependent row in an explicit,
children-before-parents order inside one transaction. The order is part of
the contract and does not depend on database-level ON DELETE rules.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Delete

from tableside.exceptions import ConflictError, NotFoundError, ValidationError
from tableside.models import (
    CartItem,
    CartItemCustomization,
    Category,
    Component,
    Extra,
    FulfillmentDetails,
    Order,
    OrderItem,
    OrderItemCustomization,
    Product,
    ProductComponent,
    ProductExtra,
    Restaurant,
    Table,
)
from tableside.services.common import clean_text, commit, parse_money
from tableside.services.orders import OPEN_ORDER_STATUSES

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "description", "phone", "email", "address", "city", "state",
    "zip_code", "country", "logo_url", "cover_image_url",
)
MONEY_FIELDS = ("delivery_fee", "min_order_amount")


def _parse_rate(value: Any) -> Decimal:
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("Invalid tax rate")
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError("Tax rate must be between 0 and 1")
    return rate


@dataclass(frozen=True)
class CascadeStep:
    """One bulk delete in the teardown sequence."""
    name: str
    statement: Callable[[int], Delete]


def _products_of(restaurant_id: int):
    return select(Product.id).where(Product.restaurant_id == restaurant_id)


def _orders_of(restaurant_id: int):
    return select(Order.id).where(Order.restaurant_id == restaurant_id)


def _cart_items_of(restaurant_id: int):
    return select(CartItem.id).where(CartItem.product_id.in_(_products_of(restaurant_id)))


def _order_items_of(restaurant_id: int):
    return select(OrderItem.id).where(OrderItem.order_id.in_(_orders_of(restaurant_id)))


RESTAURANT_CASCADE: tuple[CascadeStep, ...] = (
    CascadeStep("cart item customizations", lambda rid: delete(CartItemCustomization).where(
        CartItemCustomization.cart_item_id.in_(_cart_items_of(rid)))),
    CascadeStep("cart items", lambda rid: delete(CartItem).where(
        CartItem.product_id.in_(_products_of(rid)))),
    CascadeStep("order item customizations", lambda rid: delete(OrderItemCustomization).where(
        OrderItemCustomization.order_item_id.in_(_order_items_of(rid)))),
    CascadeStep("order items", lambda rid: delete(OrderItem).where(
        OrderItem.order_id.in_(_orders_of(rid)))),
    CascadeStep("fulfillment details", lambda rid: delete(FulfillmentDetails).where(
        FulfillmentDetails.order_id.in_(_orders_of(rid)))),
    CascadeStep("orders", lambda rid: delete(Order).where(Order.restaurant_id == rid)),
    CascadeStep("product components", lambda rid: delete(ProductComponent).where(
        ProductComponent.product_id.in_(_products_of(rid)))),
    CascadeStep("product extras", lambda rid: delete(ProductExtra).where(
        ProductExtra.product_id.in_(_products_of(rid)))),
    CascadeStep("products", lambda rid: delete(Product).where(Product.restaurant_id == rid)),
    CascadeStep("components", lambda rid: delete(Component).where(Component.restaurant_id == rid)),
    CascadeStep("extras", lambda rid: delete(Extra).where(Extra.restaurant_id == rid)),
    CascadeStep("categories", lambda rid: delete(Category).where(Category.restaurant_id == rid)),
    CascadeStep("tables", lambda rid: delete(Table).where(Table.restaurant_id == rid)),
    CascadeStep("restaurant", lambda rid: delete(Restaurant).where(Restaurant.id == rid)),
)


class RestaurantService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = await self.db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant not found")
        return restaurant

    async def catalog_counts(self, restaurant_id: int) -> dict[str, int]:
        """Number of categories, products and tables owned by the restaurant."""
        counts = {}
        for key, model in (("categories", Category), ("products", Product), ("tables", Table)):
            counts[key] = (
                await self.db.execute(
                    select(func.count(model.id)).where(model.restaurant_id == restaurant_id)
                )
            ).scalar() or 0
        return counts

    async def create_restaurant(self, name: str, **fields: Any) -> Restaurant:
        name = clean_text(name)
        if not name:
            raise ValidationError("Restaurant name is required")

        restaurant = Restaurant(name=name)
        self._apply(restaurant, fields)
        self.db.add(restaurant)
        await commit(self.db, "create restaurant")
        logger.info(f"Restaurant #{restaurant.id} created: {name}")
        return restaurant

    async def update_restaurant(self, restaurant_id: int, fields: Mapping[str, Any]) -> Restaurant:
        """Apply only the keys present in ``fields``; blank strings clear a value."""
        restaurant = await self.get_restaurant(restaurant_id)

        if "name" in fields:
            name = clean_text(fields["name"])
            if not name:
                raise ValidationError("Restaurant name cannot be empty")
            restaurant.name = name
        self._apply(restaurant, fields)

        await commit(self.db, "update restaurant")
        return restaurant

    @staticmethod
    def _apply(restaurant: Restaurant, fields: Mapping[str, Any]) -> None:
        for key in TEXT_FIELDS:
            if key in fields:
                setattr(restaurant, key, clean_text(fields[key]))
        for key in MONEY_FIELDS:
            if key in fields:
                value = fields[key]
                setattr(restaurant, key, parse_money(value, key.replace("_", " ")) if value not in (None, "") else None)
        if "tax_rate" in fields:
            value = fields["tax_rate"]
            restaurant.tax_rate = _parse_rate(value) if value not in (None, "") else None
        if "delivery_enabled" in fields and fields["delivery_enabled"] is not None:
            restaurant.delivery_enabled = bool(fields["delivery_enabled"])

    async def delete_restaurant(self, restaurant_id: int) -> None:
        """
        Remove the restaurant and everything it owns.

        Raises:
            NotFoundError: restaurant does not exist
            ConflictError: the restaurant still has open orders
        """
        await self.get_restaurant(restaurant_id)

        open_orders = (
            await self.db.execute(
                select(func.count(Order.id)).where(
                    Order.restaurant_id == restaurant_id,
                    Order.status.in_(OPEN_ORDER_STATUSES),
                )
            )
        ).scalar()
        if open_orders:
            raise ConflictError("Cannot delete restaurant with active orders")

        for step in RESTAURANT_CASCADE:
            result = await self.db.execute(
                step.statement(restaurant_id).execution_options(synchronize_session=False)
            )
            logger.debug(f"Restaurant #{restaurant_id} cascade: {step.name} ({result.rowcount} rows)")

        await commit(self.db, "delete restaurant")
        self.db.expunge_all()
        logger.info(f"Restaurant #{restaurant_id} deleted")
