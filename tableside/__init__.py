"""
                Tableside Ordering

Multi-tenant restaurant ordering backend: catalog with priced
customizations, carts, checkout, order workflow and dine-in tables.
"""

__version__ = "1.0.0"
