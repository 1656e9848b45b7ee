"""
REST routers. Each module exposes ``router``; ``tableside.main`` mounts
them all under ``/api``.
"""

from tableside.api import auth, cart, catalog, orders, restaurants, tables, users

ROUTERS = (
    auth.router,
    cart.router,
    orders.router,
    orders.admin_router,
    restaurants.router,
    catalog.router,
    tables.router,
    users.router,
    users.admin_router,
)

__all__ = ["ROUTERS"]
