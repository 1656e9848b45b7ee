"""
Cart Aggregate

Holds each user's pending, priced selections. Every query is scoped by
``user_id``; a line that belongs to somebody else is reported as missing
rather than forbidden so its existence never leaks.

Lines are never merged: adding the same product twice produces two lines,
each with its own price snapshot.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.exceptions import NotFoundError, UnavailableError, ValidationError
from tableside.models import CartItem, CartItemCustomization, Product
from tableside.services.common import UNSET, clean_text, commit, quantize_money
from tableside.services.pricing import Selection, price_line

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartTotals:
    total_amount: Decimal
    item_count: int
    unique_items: int


def compute_totals(items: Iterable[CartItem]) -> CartTotals:
    """Σ(final price × quantity) rounded to cents, plus counts."""
    total = Decimal("0")
    item_count = 0
    unique_items = 0
    for item in items:
        total += Decimal(item.final_price_snapshot) * item.quantity
        item_count += item.quantity
        unique_items += 1
    return CartTotals(
        total_amount=quantize_money(total),
        item_count=item_count,
        unique_items=unique_items,
    )


class CartService:
    """Cart operations for one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_owned_item(self, item_id: int, user_id: int) -> CartItem:
        result = await self.db.execute(
            select(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError("Cart item not found")
        return item

    async def _reload(self, item_id: int) -> CartItem:
        result = await self.db.execute(
            select(CartItem)
            .where(CartItem.id == item_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_cart(self, user_id: int) -> list[CartItem]:
        """The user's cart lines, newest first."""
        result = await self.db.execute(
            select(CartItem)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        )
        return list(result.scalars().all())

    async def add(
        self,
        user_id: int,
        product_id: int,
        quantity: int = 1,
        customizations: Optional[Iterable[Selection]] = None,
        note: Optional[str] = None,
    ) -> CartItem:
        """
        Price and add a new line to the user's cart.

        Raises:
            ValidationError: quantity below 1
            NotFoundError: product does not exist
            UnavailableError: product is inactive
            InvalidCustomizationError: a customization is not offered on the
                product or the component is not removable
        """
        if not user_id:
            raise ValidationError("User ID is required")
        if not product_id:
            raise ValidationError("Product ID is required")
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = await self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if not product.is_active:
            raise UnavailableError("Product is not available")

        priced = price_line(product, customizations)

        item = CartItem(
            user_id=user_id,
            product_id=product.id,
            quantity=quantity,
            base_price_snapshot=priced.base_price,
            final_price_snapshot=priced.final_price,
            note=clean_text(note),
        )
        item.customizations = [
            CartItemCustomization(
                type=c.type,
                reference_id=c.reference_id,
                name_snapshot=c.name_snapshot,
                price_impact=c.price_impact,
            )
            for c in priced.customizations
        ]
        self.db.add(item)
        await commit(self.db, "add item to cart")

        logger.info(
            f"Cart: user {user_id} added product #{product.id} x{quantity} "
            f"@ {priced.final_price} (line #{item.id})"
        )
        return await self._reload(item.id)

    async def update_item(
        self,
        item_id: int,
        user_id: int,
        quantity=UNSET,
        note=UNSET,
    ) -> CartItem:
        """
        Change a line's quantity and/or note in place.

        Prices are not re-evaluated; the insertion-time snapshot stands.
        """
        if quantity is not UNSET and (quantity is None or quantity < 1):
            raise ValidationError("Quantity must be at least 1")

        item = await self._get_owned_item(item_id, user_id)

        if quantity is not UNSET:
            item.quantity = quantity
        if note is not UNSET:
            item.note = clean_text(note)

        await commit(self.db, "update cart item")
        return await self._reload(item.id)

    async def remove(self, item_id: int, user_id: int) -> None:
        """Delete one line together with its customizations."""
        item = await self._get_owned_item(item_id, user_id)

        await self.db.execute(
            delete(CartItemCustomization).where(CartItemCustomization.cart_item_id == item.id)
        )
        await self.db.execute(delete(CartItem).where(CartItem.id == item.id))
        await commit(self.db, "remove cart item")

        logger.info(f"Cart: user {user_id} removed line #{item_id}")

    async def clear(self, user_id: int) -> int:
        """
        Delete every line in the user's cart.

        Returns:
            Number of lines removed
        """
        owned = select(CartItem.id).where(CartItem.user_id == user_id)
        await self.db.execute(
            delete(CartItemCustomization).where(CartItemCustomization.cart_item_id.in_(owned))
        )
        result = await self.db.execute(delete(CartItem).where(CartItem.user_id == user_id))
        await commit(self.db, "clear cart")

        removed = result.rowcount or 0
        logger.info(f"Cart: user {user_id} cleared ({removed} lines)")
        return removed

    async def totals(self, user_id: int) -> CartTotals:
        return compute_totals(await self.get_cart(user_id))
