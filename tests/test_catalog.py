"""Catalog rules: categories, products, customizations and restaurant teardown."""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tableside.exceptions import ConflictError, NotFoundError, UnexpectedError, ValidationError
from tableside.models import (
    CartItem,
    Category,
    Component,
    Extra,
    Order,
    OrderStatus,
    Product,
    ProductComponent,
    Restaurant,
    Table,
)
from tableside.services.cart import CartService
from tableside.services.catalog import (
    CategoryService,
    ComponentLink,
    CustomizationService,
    DeleteOutcome,
    ProductFilter,
    ProductService,
)
from tableside.services.checkout import CheckoutService
from tableside.services.orders import OrderService
from tableside.services.restaurants import RestaurantService
from tableside.services import catalog as catalog_module
from tableside.services.storage import LocalBlobStore, MemoryBlobStore

PICKUP = {"pickup_time": datetime(2026, 11, 1, 12, 30)}


async def count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


# =============================================================================
# CATEGORIES
# =============================================================================

async def test_category_names_are_unique_per_restaurant(db, restaurant):
    service = CategoryService(db)
    await service.create_category(restaurant.id, "Drinks")

    with pytest.raises(ConflictError, match="Category with this name already exists"):
        await service.create_category(restaurant.id, "  drinks ")


async def test_category_name_required(db, restaurant):
    with pytest.raises(ValidationError, match="Category name is required"):
        await CategoryService(db).create_category(restaurant.id, "   ")


async def test_category_with_products_cannot_be_deleted(db, menu):
    category_id = menu["category"].id
    with pytest.raises(ConflictError, match="Cannot delete category with existing products"):
        await CategoryService(db).delete_category(category_id)


async def test_empty_category_is_deleted(db, restaurant):
    service = CategoryService(db)
    category = await service.create_category(restaurant.id, "Desserts")

    await service.delete_category(category.id)

    with pytest.raises(NotFoundError, match="Category not found"):
        await service.get_category(category.id)


# =============================================================================
# PRODUCTS
# =============================================================================

async def test_create_product_with_links(db, menu):
    product = await ProductService(db).create_product(
        restaurant_id=menu["restaurant"].id,
        category_id=menu["category"].id,
        name=" Pork Souvlaki ",
        base_price="10.5",
        components=[ComponentLink(menu["olives"].id), ComponentLink(menu["pita"].id, is_removable=False)],
        extra_ids=[menu["sauce"].id, menu["sauce"].id],
    )

    assert product.name == "Pork Souvlaki"
    assert product.base_price == Decimal("10.50")
    assert product.is_active is True
    assert {(c.component.name, c.is_removable) for c in product.components} == {("Olives", True), ("Pita", False)}
    assert [e.extra.name for e in product.extras] == ["Extra sauce"]


@pytest.mark.parametrize(
    "name, price, message",
    [
        ("", "10", "Product name is required"),
        ("Soup", None, "Valid base price is required"),
        ("Soup", "-1", "Invalid base price"),
        ("Soup", "abc", "Invalid base price"),
    ],
)
async def test_create_product_validation(db, menu, name, price, message):
    with pytest.raises(ValidationError) as exc_info:
        await ProductService(db).create_product(
            restaurant_id=menu["restaurant"].id,
            category_id=menu["category"].id,
            name=name,
            base_price=price,
        )
    assert exc_info.value.message == message


async def test_create_product_unknown_links(db, menu):
    service = ProductService(db)
    with pytest.raises(NotFoundError, match="Category not found"):
        await service.create_product(menu["restaurant"].id, 9999, "Soup", "4.00")
    with pytest.raises(NotFoundError, match="Extra 9999 not found"):
        await service.create_product(menu["restaurant"].id, menu["category"].id, "Soup", "4.00", extra_ids=[9999])


async def test_update_product_replaces_links(db, menu):
    service = ProductService(db)
    product_id = menu["product"].id

    product = await service.update_product(
        product_id,
        {
            "base_price": "13.50",
            "components": [ComponentLink(menu["olives"].id, is_removable=False)],
            "extra_ids": [menu["halloumi"].id],
        },
    )

    assert product.base_price == Decimal("13.50")
    assert [(c.component_id, c.is_removable) for c in product.components] == [(menu["olives"].id, False)]
    assert [e.extra_id for e in product.extras] == [menu["halloumi"].id]
    assert await count(db, ProductComponent) == 1


async def test_list_products_filters(db, menu):
    service = ProductService(db)
    restaurant_id = menu["restaurant"].id
    salad = await service.create_product(restaurant_id, menu["category"].id, "Greek Salad", "8.99", description="Feta")
    await service.toggle_status(salad.id)

    names = [p.name for p in await service.list_products(restaurant_id)]
    assert names == ["Chicken Gyro", "Greek Salad"]
    active = await service.list_products(restaurant_id, ProductFilter(is_active=True))
    assert [p.name for p in active] == ["Chicken Gyro"]
    found = await service.list_products(restaurant_id, ProductFilter(search="FETA"))
    assert [p.name for p in found] == ["Greek Salad"]


async def test_unordered_product_is_hard_deleted(db, customer, menu):
    product_id = menu["product"].id
    await CartService(db).add(customer.id, product_id)

    deletion = await ProductService(db).delete_product(product_id)

    assert deletion.outcome == DeleteOutcome.DELETED
    assert await count(db, Product) == 0
    assert await count(db, CartItem) == 0
    assert await count(db, ProductComponent) == 0


async def test_ordered_product_is_soft_deleted(db, customer, menu):
    product_id = menu["product"].id
    await CartService(db).add(customer.id, product_id)
    await CheckoutService(db).checkout(customer.id, menu["restaurant"].id, "PICKUP", PICKUP)

    deletion = await ProductService(db).delete_product(product_id)

    assert deletion.outcome == DeleteOutcome.SOFT_DELETED
    assert deletion.product.is_active is False
    assert await count(db, Product) == 1


async def test_attach_image(db, menu):
    store = MemoryBlobStore()
    service = ProductService(db, blob_store=store)

    product = await service.attach_image(menu["product"].id, b"\x89PNG...", "gyro.png", "image/png")

    assert product.image_url.startswith("memory://")
    assert product.image_url.endswith(".png")
    assert len(store.objects) == 1


async def test_attach_image_rejects_bad_type(db, menu):
    service = ProductService(db, blob_store=MemoryBlobStore())
    with pytest.raises(ValidationError, match="Unsupported image type"):
        await service.attach_image(menu["product"].id, b"%PDF", "menu.pdf", "application/pdf")


async def test_replacing_an_image_removes_the_old_one(db, menu):
    store = MemoryBlobStore()
    service = ProductService(db, blob_store=store)
    product_id = menu["product"].id

    first = (await service.attach_image(product_id, b"\x89PNG-1", "a.png", "image/png")).image_url
    second = (await service.attach_image(product_id, b"\x89PNG-2", "b.png", "image/png")).image_url

    assert first != second
    assert list(store.objects) == [store.key_for_url(second)]
    assert store.objects[store.key_for_url(second)] == b"\x89PNG-2"


async def test_foreign_image_url_is_left_alone(db, menu):
    store = MemoryBlobStore()
    service = ProductService(db, blob_store=store)
    product = await service.get_product(menu["product"].id)
    product.image_url = "https://cdn.example.com/gyro.png"
    await db.commit()

    product = await service.attach_image(product.id, b"\x89PNG", "gyro.png", "image/png")

    assert len(store.objects) == 1
    assert store.key_for_url("https://cdn.example.com/gyro.png") is None


async def test_failed_commit_discards_new_upload(db, menu, monkeypatch):
    store = MemoryBlobStore()
    service = ProductService(db, blob_store=store)
    product_id = menu["product"].id
    await service.attach_image(product_id, b"\x89PNG-1", "a.png", "image/png")
    kept = list(store.objects)

    async def failing_commit(session, action, conflict_message=None):
        await session.rollback()
        raise UnexpectedError(f"Failed to {action}")

    monkeypatch.setattr(catalog_module, "commit", failing_commit)
    with pytest.raises(UnexpectedError, match="Failed to attach product image"):
        await service.attach_image(product_id, b"\x89PNG-2", "b.png", "image/png")

    assert list(store.objects) == kept


async def test_local_store_replaces_file_on_disk(db, menu, tmp_path):
    store = LocalBlobStore(str(tmp_path), "http://localhost:8001/uploads/")
    service = ProductService(db, blob_store=store)
    product_id = menu["product"].id

    await service.attach_image(product_id, b"\x89PNG-1", "a.png", "image/png")
    product = await service.attach_image(product_id, b"\x89PNG-2", "b.png", "image/png")

    assert product.image_url.startswith("http://localhost:8001/uploads/")
    files = list(tmp_path.iterdir())
    assert [f.name for f in files] == [store.key_for_url(product.image_url)]
    assert files[0].read_bytes() == b"\x89PNG-2"


# =============================================================================
# CUSTOMIZATIONS
# =============================================================================

async def test_extra_in_use_cannot_be_deleted(db, menu):
    with pytest.raises(ConflictError, match="Cannot delete extra that is used in products"):
        await CustomizationService(db).delete_extra(menu["sauce"].id)


async def test_component_in_use_cannot_be_deleted(db, menu):
    with pytest.raises(ConflictError, match="Cannot delete component that is used in products"):
        await CustomizationService(db).delete_component(menu["olives"].id)


async def test_unused_extra_is_deleted(db, restaurant):
    service = CustomizationService(db)
    extra = await service.create_extra(restaurant.id, "Fries", "2.00")

    await service.delete_extra(extra.id)

    assert await count(db, Extra) == 0


async def test_listings_carry_usage_counts(db, menu):
    service = CustomizationService(db)
    restaurant_id = menu["restaurant"].id

    extras = {extra.name: used for extra, used in await service.list_extras(restaurant_id)}
    assert extras == {"Extra sauce": 1, "Halloumi": 1}

    await service.create_component(restaurant_id, "Onion", "0.25")
    components = {c.name: used for c, used in await service.list_components(restaurant_id)}
    assert components == {"Olives": 1, "Onion": 0, "Pita": 1}


async def test_negative_extra_price_rejected(db, restaurant):
    with pytest.raises(ValidationError, match="Invalid price"):
        await CustomizationService(db).create_extra(restaurant.id, "Fries", "-2")


# =============================================================================
# RESTAURANT TEARDOWN
# =============================================================================

async def test_restaurant_with_open_orders_is_kept(db, customer, menu):
    await CartService(db).add(customer.id, menu["product"].id)
    await CheckoutService(db).checkout(customer.id, menu["restaurant"].id, "PICKUP", PICKUP)

    with pytest.raises(ConflictError, match="Cannot delete restaurant with active orders"):
        await RestaurantService(db).delete_restaurant(menu["restaurant"].id)


async def test_restaurant_delete_cascades(db, customer, menu, tables):
    restaurant_id = menu["restaurant"].id
    cart = CartService(db)
    await cart.add(customer.id, menu["product"].id)
    order = await CheckoutService(db).checkout(customer.id, restaurant_id, "PICKUP", PICKUP)
    await OrderService(db).reject_order(order.id)
    await cart.add(customer.id, menu["product"].id)

    await RestaurantService(db).delete_restaurant(restaurant_id)

    for model in (Restaurant, Category, Product, Component, Extra, Table, Order, CartItem, ProductComponent):
        assert await count(db, model) == 0, model.__name__
