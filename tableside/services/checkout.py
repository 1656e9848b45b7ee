"""
Checkout Orchestrator

Turns a user's cart into an order:

    1. load cart lines and totals
    2. refuse an empty cart
    3. create the order from the loaded lines and total (one commit)
    4. clear the cart

If step 3 fails nothing is written and the cart is left alone. If step 4
fails, the order is already durable; the stale cart is logged as a warning
and the order is still returned to the caller.
"""

import logging
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from tableside.exceptions import ValidationError
from tableside.models import FulfillmentType, Order
from tableside.services.cart import CartService, compute_totals
from tableside.services.orders import OrderService

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(
        self,
        db: AsyncSession,
        cart: Optional[CartService] = None,
        orders: Optional[OrderService] = None,
    ):
        self.db = db
        self.cart = cart or CartService(db)
        self.orders = orders or OrderService(db)

    async def checkout(
        self,
        user_id: int,
        restaurant_id: int,
        fulfillment_type: Union[FulfillmentType, str],
        fulfillment_details: Any,
    ) -> Order:
        """
        Raises:
            ValidationError: empty cart or invalid fulfillment details
            NotFoundError: restaurant or dine-in table missing
            UnexpectedError: storage failure while creating the order
        """
        items = await self.cart.get_cart(user_id)
        if not items:
            raise ValidationError("Cart is empty")
        totals = compute_totals(items)

        order = await self.orders.create_order(
            user_id=user_id,
            restaurant_id=restaurant_id,
            fulfillment_type=fulfillment_type,
            fulfillment_details=fulfillment_details,
            cart_items=items,
            total_amount=totals.total_amount,
        )
        order_id = order.id

        try:
            await self.cart.clear(user_id)
        except Exception:
            # Order is committed; a leftover cart is recoverable by the user
            await self.db.rollback()
            logger.warning(
                f"Order #{order_id} created but cart for user {user_id} was not cleared",
                exc_info=True,
            )
            # rollback() expired every loaded instance
            order = await self.orders.get_order(order_id)

        return order
