"""
Catalog Management

Categories, products and the customization catalog (components and
extras) of a restaurant. Mostly lookup / validate / persist, with a few
rules that protect order history:

- a category that still has products cannot be deleted
- a component or extra still linked to a product cannot be deleted
- a product that appears in past orders is deactivated instead of deleted;
  the caller learns which happened from ``ProductDeletion.outcome``
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.exceptions import ConflictError, NotFoundError, TablesideError, ValidationError
from tableside.models import (
    CartItem,
    CartItemCustomization,
    Category,
    Component,
    Extra,
    OrderItem,
    Product,
    ProductComponent,
    ProductExtra,
)
from tableside.services.common import UNSET, clean_text, commit, parse_money
from tableside.services.storage import BaseBlobStore, validate_image

logger = logging.getLogger(__name__)


# =============================================================================
# FILTERS & OUTCOMES
# =============================================================================

@dataclass
class ProductFilter:
    """
    Filter for product listings.

    Attributes:
        category_id: only products in this category
        search: case-insensitive substring of name or description
        is_active: True for active only, False for inactive only, None for all
    """
    category_id: Optional[int] = None
    search: Optional[str] = None
    is_active: Optional[bool] = None


class DeleteOutcome(str, enum.Enum):
    DELETED = "DELETED"
    SOFT_DELETED = "SOFT_DELETED"


@dataclass(frozen=True)
class ProductDeletion:
    outcome: DeleteOutcome
    product_id: int
    product: Optional[Product] = None


@dataclass(frozen=True)
class ComponentLink:
    """Component to attach to a product, and whether customers may remove it."""
    component_id: int
    is_removable: bool = True


# =============================================================================
# CATEGORIES
# =============================================================================

class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_categories(self, restaurant_id: int) -> list[Category]:
        result = await self.db.execute(
            select(Category).where(Category.restaurant_id == restaurant_id).order_by(Category.name)
        )
        return list(result.scalars().all())

    async def get_category(self, category_id: int) -> Category:
        category = await self.db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")
        return category

    async def active_products(self, category_id: int) -> list[Product]:
        result = await self.db.execute(
            select(Product)
            .where(Product.category_id == category_id, Product.is_active.is_(True))
            .order_by(Product.name)
        )
        return list(result.scalars().all())

    async def _ensure_unique(self, restaurant_id: int, name: str, exclude_id: Optional[int] = None) -> None:
        query = select(Category.id).where(
            Category.restaurant_id == restaurant_id,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            query = query.where(Category.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictError("Category with this name already exists")

    async def create_category(self, restaurant_id: int, name: Optional[str]) -> Category:
        name = clean_text(name)
        if not name:
            raise ValidationError("Category name is required")
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")
        await self._ensure_unique(restaurant_id, name)

        category = Category(restaurant_id=restaurant_id, name=name)
        self.db.add(category)
        await commit(self.db, "create category")
        return category

    async def update_category(self, category_id: int, name: Optional[str]) -> Category:
        name = clean_text(name)
        if not name:
            raise ValidationError("Category name is required")
        category = await self.get_category(category_id)
        await self._ensure_unique(category.restaurant_id, name, exclude_id=category.id)

        category.name = name
        await commit(self.db, "update category")
        return category

    async def delete_category(self, category_id: int) -> None:
        """
        Raises:
            ConflictError: the category still has products (active or not)
        """
        await self.get_category(category_id)

        product_count = (
            await self.db.execute(select(func.count(Product.id)).where(Product.category_id == category_id))
        ).scalar()
        if product_count:
            raise ConflictError("Cannot delete category with existing products")

        await self.db.execute(delete(Category).where(Category.id == category_id))
        await commit(self.db, "delete category")
        logger.info(f"Category #{category_id} deleted")


# =============================================================================
# PRODUCTS
# =============================================================================

class ProductService:
    def __init__(self, db: AsyncSession, blob_store: Optional[BaseBlobStore] = None):
        self.db = db
        self.blob_store = blob_store

    async def list_products(self, restaurant_id: int, filters: Optional[ProductFilter] = None) -> list[Product]:
        filters = filters or ProductFilter()
        query = select(Product).where(Product.restaurant_id == restaurant_id)

        if filters.category_id is not None:
            query = query.where(Product.category_id == filters.category_id)
        if filters.is_active is not None:
            query = query.where(Product.is_active.is_(filters.is_active))
        if filters.search:
            pattern = f"%{filters.search.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(Product.name).like(pattern),
                    func.lower(Product.description).like(pattern),
                )
            )

        result = await self.db.execute(query.order_by(Product.name))
        return list(result.scalars().all())

    async def get_product(self, product_id: int) -> Product:
        result = await self.db.execute(
            select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product not found")
        return product

    async def _check_links(
        self,
        restaurant_id: int,
        components: Iterable[ComponentLink],
        extra_ids: Iterable[int],
    ) -> None:
        """Every linked component/extra must exist and belong to the restaurant."""
        component_ids = {c.component_id for c in components}
        if component_ids:
            found = set(
                (
                    await self.db.execute(
                        select(Component.id).where(
                            Component.id.in_(component_ids),
                            Component.restaurant_id == restaurant_id,
                        )
                    )
                ).scalars().all()
            )
            missing = component_ids - found
            if missing:
                raise NotFoundError(f"Component {min(missing)} not found")

        extra_ids = set(extra_ids)
        if extra_ids:
            found = set(
                (
                    await self.db.execute(
                        select(Extra.id).where(Extra.id.in_(extra_ids), Extra.restaurant_id == restaurant_id)
                    )
                ).scalars().all()
            )
            missing = extra_ids - found
            if missing:
                raise NotFoundError(f"Extra {min(missing)} not found")

    async def create_product(
        self,
        restaurant_id: int,
        category_id: int,
        name: Optional[str],
        base_price: Any,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        components: Iterable[ComponentLink] = (),
        extra_ids: Iterable[int] = (),
    ) -> Product:
        name = clean_text(name)
        if not name:
            raise ValidationError("Product name is required")
        price = parse_money(base_price, "base price")
        if not category_id:
            raise ValidationError("Category ID is required")
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")

        category = await self.db.get(Category, category_id)
        if category is None or category.restaurant_id != restaurant_id:
            raise NotFoundError("Category not found")

        components = list(components)
        extra_ids = list(dict.fromkeys(extra_ids))
        await self._check_links(restaurant_id, components, extra_ids)

        product = Product(
            restaurant_id=restaurant_id,
            category_id=category_id,
            name=name,
            description=clean_text(description),
            base_price=price,
            image_url=image_url,
            is_active=True,
        )
        product.components = [
            ProductComponent(component_id=c.component_id, is_removable=c.is_removable)
            for c in {c.component_id: c for c in components}.values()
        ]
        product.extras = [ProductExtra(extra_id=extra_id) for extra_id in extra_ids]

        self.db.add(product)
        await commit(self.db, "create product")
        logger.info(f"Product #{product.id} created: {name} @ {price}")
        return await self.get_product(product.id)

    async def update_product(self, product_id: int, fields: Mapping[str, Any]) -> Product:
        """
        Apply only the keys present in ``fields``. ``components`` and
        ``extra_ids`` replace the product's links wholesale.
        """
        product = await self.get_product(product_id)

        if "name" in fields:
            name = clean_text(fields["name"])
            if not name:
                raise ValidationError("Product name cannot be empty")
            product.name = name
        if "description" in fields:
            product.description = clean_text(fields["description"])
        if "base_price" in fields:
            product.base_price = parse_money(fields["base_price"], "base price")
        if "image_url" in fields:
            product.image_url = fields["image_url"]
        if "is_active" in fields and fields["is_active"] is not None:
            product.is_active = bool(fields["is_active"])
        if fields.get("category_id") is not None:
            category = await self.db.get(Category, fields["category_id"])
            if category is None or category.restaurant_id != product.restaurant_id:
                raise NotFoundError("Category not found")
            product.category_id = category.id

        components = fields.get("components")
        extra_ids = fields.get("extra_ids")
        await self._check_links(product.restaurant_id, components or (), extra_ids or ())

        # Existing link rows are reused so the session never holds two
        # objects with the same composite key
        if components is not None:
            current = {link.component_id: link for link in product.components}
            replacement = []
            for wanted in {c.component_id: c for c in components}.values():
                link = current.get(wanted.component_id) or ProductComponent(component_id=wanted.component_id)
                link.is_removable = wanted.is_removable
                replacement.append(link)
            product.components = replacement
        if extra_ids is not None:
            current = {link.extra_id: link for link in product.extras}
            product.extras = [
                current.get(extra_id) or ProductExtra(extra_id=extra_id)
                for extra_id in dict.fromkeys(extra_ids)
            ]

        await commit(self.db, "update product")
        return await self.get_product(product.id)

    async def toggle_status(self, product_id: int) -> Product:
        product = await self.get_product(product_id)
        product.is_active = not product.is_active
        await commit(self.db, "toggle product status")
        logger.info(f"Product #{product_id} is_active={product.is_active}")
        return product

    async def delete_product(self, product_id: int) -> ProductDeletion:
        """
        Delete a product, or deactivate it when orders reference it.

        Returns:
            ProductDeletion tagged DELETED or SOFT_DELETED
        """
        product = await self.get_product(product_id)

        in_orders = (
            await self.db.execute(select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id))
        ).scalar()
        if in_orders:
            product.is_active = False
            await commit(self.db, "deactivate product")
            logger.info(f"Product #{product_id} soft-deleted ({in_orders} order lines reference it)")
            return ProductDeletion(DeleteOutcome.SOFT_DELETED, product_id, product)

        in_carts = select(CartItem.id).where(CartItem.product_id == product_id)
        await self.db.execute(
            delete(CartItemCustomization)
            .where(CartItemCustomization.cart_item_id.in_(in_carts))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(CartItem).where(CartItem.product_id == product_id).execution_options(synchronize_session=False)
        )
        await self.db.delete(product)
        await commit(self.db, "delete product")
        logger.info(f"Product #{product_id} deleted")
        return ProductDeletion(DeleteOutcome.DELETED, product_id)

    async def attach_image(self, product_id: int, data: bytes, filename: str, content_type: str) -> Product:
        """
        Validate and store an image, then point the product at it.

        The image it replaces is removed from the store once the new URL is
        committed. If the commit fails the new upload is removed instead.
        """
        if self.blob_store is None:
            raise ValidationError("Image uploads are not configured")
        product = await self.get_product(product_id)
        validate_image(data, content_type)
        previous_key = self.blob_store.key_for_url(product.image_url)

        blob = await self.blob_store.upload(data, filename=filename, content_type=content_type)
        product.image_url = blob.url
        try:
            await commit(self.db, "attach product image")
        except TablesideError:
            await self.blob_store.delete(blob.key)
            raise
        logger.info(f"Product #{product_id} image stored at {blob.url}")

        if previous_key:
            try:
                await self.blob_store.delete(previous_key)
            except (OSError, ValueError) as e:
                logger.warning(f"Product #{product_id}: could not remove old image {previous_key}: {e}")
        return product


# =============================================================================
# CUSTOMIZATION CATALOG
# =============================================================================

class CustomizationService:
    """Components (removable ingredients) and extras (paid add-ons)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_extras(self, restaurant_id: int) -> list[tuple[Extra, int]]:
        """Extras with the number of products offering each."""
        result = await self.db.execute(
            select(Extra, func.count(ProductExtra.product_id))
            .outerjoin(ProductExtra, ProductExtra.extra_id == Extra.id)
            .where(Extra.restaurant_id == restaurant_id)
            .group_by(Extra.id)
            .order_by(Extra.name)
        )
        return [(extra, count) for extra, count in result.all()]

    async def get_extra(self, extra_id: int) -> Extra:
        extra = await self.db.get(Extra, extra_id)
        if extra is None:
            raise NotFoundError("Extra not found")
        return extra

    async def create_extra(self, restaurant_id: int, name: Optional[str], price: Any) -> Extra:
        name = clean_text(name)
        if not name:
            raise ValidationError("Extra name is required")
        amount = parse_money(price, "price")
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")

        extra = Extra(restaurant_id=restaurant_id, name=name, price=amount)
        self.db.add(extra)
        await commit(self.db, "create extra")
        return extra

    async def update_extra(self, extra_id: int, name=UNSET, price=UNSET) -> Extra:
        extra = await self.get_extra(extra_id)
        if name is not UNSET:
            name = clean_text(name)
            if not name:
                raise ValidationError("Extra name cannot be empty")
            extra.name = name
        if price is not UNSET:
            extra.price = parse_money(price, "price")
        await commit(self.db, "update extra")
        return extra

    async def delete_extra(self, extra_id: int) -> None:
        await self.get_extra(extra_id)
        used = (
            await self.db.execute(
                select(func.count()).select_from(ProductExtra).where(ProductExtra.extra_id == extra_id)
            )
        ).scalar()
        if used:
            raise ConflictError("Cannot delete extra that is used in products")
        await self.db.execute(delete(Extra).where(Extra.id == extra_id))
        await commit(self.db, "delete extra")

    async def list_components(self, restaurant_id: int) -> list[tuple[Component, int]]:
        result = await self.db.execute(
            select(Component, func.count(ProductComponent.product_id))
            .outerjoin(ProductComponent, ProductComponent.component_id == Component.id)
            .where(Component.restaurant_id == restaurant_id)
            .group_by(Component.id)
            .order_by(Component.name)
        )
        return [(component, count) for component, count in result.all()]

    async def get_component(self, component_id: int) -> Component:
        component = await self.db.get(Component, component_id)
        if component is None:
            raise NotFoundError("Component not found")
        return component

    async def create_component(self, restaurant_id: int, name: Optional[str], cost_impact: Any) -> Component:
        name = clean_text(name)
        if not name:
            raise ValidationError("Component name is required")
        amount = parse_money(cost_impact, "cost impact")
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")

        component = Component(restaurant_id=restaurant_id, name=name, cost_impact=amount)
        self.db.add(component)
        await commit(self.db, "create component")
        return component

    async def update_component(self, component_id: int, name=UNSET, cost_impact=UNSET) -> Component:
        component = await self.get_component(component_id)
        if name is not UNSET:
            name = clean_text(name)
            if not name:
                raise ValidationError("Component name cannot be empty")
            component.name = name
        if cost_impact is not UNSET:
            component.cost_impact = parse_money(cost_impact, "cost impact")
        await commit(self.db, "update component")
        return component

    async def delete_component(self, component_id: int) -> None:
        await self.get_component(component_id)
        used = (
            await self.db.execute(
                select(func.count()).select_from(ProductComponent).where(ProductComponent.component_id == component_id)
            )
        ).scalar()
        if used:
            raise ConflictError("Cannot delete component that is used in products")
        await self.db.execute(delete(Component).where(Component.id == component_id))
        await commit(self.db, "delete component")
