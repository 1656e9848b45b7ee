"""
                        Services Module

Business logic for the ordering system. Every service takes an
``AsyncSession`` and owns its own transaction boundaries.

Services:
    - pricing: customization pricing (pure functions)
    - cart: per-user cart lines and totals
    - orders: order creation, status machine, listings
    - checkout: cart → order orchestration
    - tables: table CRUD and availability
    - catalog: categories, products, components, extras
    - restaurants: restaurant profile and teardown
    - users: sign-up/sign-in, profiles, admin user management
    - identity: token service and password hasher (factory)
    - storage: image blob store (factory)
"""

from tableside.services.cart import CartService, CartTotals, compute_totals
from tableside.services.catalog import (
    CategoryService,
    CustomizationService,
    DeleteOutcome,
    ProductDeletion,
    ProductFilter,
    ProductService,
)
from tableside.services.checkout import CheckoutService
from tableside.services.orders import OrderFilter, OrderService
from tableside.services.pricing import Selection, price_line
from tableside.services.restaurants import RestaurantService
from tableside.services.tables import TableAvailabilityChecker, TableService
from tableside.services.users import AuthService, UserFilter, UserService

__all__ = [
    "AuthService",
    "CartService",
    "CartTotals",
    "CategoryService",
    "CheckoutService",
    "CustomizationService",
    "DeleteOutcome",
    "OrderFilter",
    "OrderService",
    "ProductDeletion",
    "ProductFilter",
    "ProductService",
    "RestaurantService",
    "Selection",
    "TableAvailabilityChecker",
    "TableService",
    "UserFilter",
    "UserService",
    "compute_totals",
    "price_line",
]
