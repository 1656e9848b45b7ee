"""
SQLAlchemy Database Models

Multi-tenant restaurant ordering schema:
- Restaurants own their catalog (categories, products, components, extras)
  and their tables
- Carts are per-user rows of priced line items
- Orders are frozen, price-snapshotted copies of a cart
- Fulfillment details hang off an order and optionally reserve a table
"""

from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from tableside.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Two-decimal money column; values are always Decimal
Money = Numeric(10, 2, asdecimal=True)


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class FulfillmentType(str, enum.Enum):
    """How the order reaches the customer."""
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"
    DINE_IN = "DINE_IN"


class CustomizationType(str, enum.Enum):
    EXTRA = "EXTRA"
    REMOVED_COMPONENT = "REMOVED_COMPONENT"


# =============================================================================
# TENANCY & IDENTITY
# =============================================================================

class Restaurant(Base):
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)

    # Contact
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)

    # Address
    address = Column(String(255), nullable=True)
    city = Column(String(80), nullable=True)
    state = Column(String(80), nullable=True)
    zip_code = Column(String(20), nullable=True)
    country = Column(String(80), nullable=True)

    # Images
    logo_url = Column(String(500), nullable=True)
    cover_image_url = Column(String(500), nullable=True)

    # Delivery & tax
    delivery_enabled = Column(Boolean, default=False, nullable=False)
    delivery_fee = Column(Money, nullable=True)
    min_order_amount = Column(Money, nullable=True)
    tax_rate = Column(Numeric(6, 4, asdecimal=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.name}>"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    def __repr__(self):
        return f"<User #{self.id} - {self.email} - {self.role.value}>"


# =============================================================================
# CATALOG
# =============================================================================

class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Category #{self.id} - {self.name}>"


class Component(Base):
    """A default ingredient that may be priced out of a product."""
    __tablename__ = "components"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    cost_impact = Column(Money, nullable=False, default=0)

    def __repr__(self):
        return f"<Component #{self.id} - {self.name}>"


class Extra(Base):
    """A priced add-on."""
    __tablename__ = "extras"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Money, nullable=False)

    def __repr__(self):
        return f"<Extra #{self.id} - {self.name}>"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Money, nullable=False)
    image_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    category = relationship("Category", lazy="selectin")
    components = relationship(
        "ProductComponent",
        lazy="selectin",
        cascade="all, delete-orphan",
        back_populates="product",
    )
    extras = relationship(
        "ProductExtra",
        lazy="selectin",
        cascade="all, delete-orphan",
        back_populates="product",
    )

    def __repr__(self):
        return f"<Product #{self.id} - {self.name} - {self.base_price}>"


class ProductComponent(Base):
    __tablename__ = "product_components"

    product_id = Column(Integer, ForeignKey("products.id"), primary_key=True)
    component_id = Column(Integer, ForeignKey("components.id"), primary_key=True)
    is_removable = Column(Boolean, default=True, nullable=False)

    product = relationship("Product", back_populates="components")
    component = relationship("Component", lazy="selectin")


class ProductExtra(Base):
    __tablename__ = "product_extras"

    product_id = Column(Integer, ForeignKey("products.id"), primary_key=True)
    extra_id = Column(Integer, ForeignKey("extras.id"), primary_key=True)

    product = relationship("Product", back_populates="extras")
    extra = relationship("Extra", lazy="selectin")


# =============================================================================
# CART
# =============================================================================

class CartItem(Base):
    """
    One pending line in a user's cart.

    Prices are captured at insertion time and are never recomputed when
    the product's price changes afterwards.
    """
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    base_price_snapshot = Column(Money, nullable=False)
    final_price_snapshot = Column(Money, nullable=False)
    note = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    product = relationship("Product", lazy="selectin")
    customizations = relationship(
        "CartItemCustomization",
        lazy="selectin",
        order_by="CartItemCustomization.id",
    )

    def __repr__(self):
        return f"<CartItem #{self.id} - user {self.user_id} - x{self.quantity}>"


class CartItemCustomization(Base):
    __tablename__ = "cart_item_customizations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cart_item_id = Column(Integer, ForeignKey("cart_items.id"), nullable=False, index=True)
    type = Column(Enum(CustomizationType), nullable=False)
    reference_id = Column(Integer, nullable=False)
    name_snapshot = Column(String(100), nullable=False)
    price_impact = Column(Money, nullable=False)


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Immutable snapshot of a cart at checkout time.

    Only ``status``, ``paid_at`` and ``updated_at`` ever change after creation.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    fulfillment_type = Column(Enum(FulfillmentType), nullable=False, index=True)
    total_amount = Column(Money, nullable=False)
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", lazy="selectin", order_by="OrderItem.id")
    fulfillment = relationship(
        "FulfillmentDetails",
        lazy="selectin",
        uselist=False,
        back_populates="order",
    )

    def __repr__(self):
        return f"<Order #{self.id} - {self.fulfillment_type.value} - {self.status.value}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True, index=True)
    product_name_snapshot = Column(String(150), nullable=False)
    quantity = Column(Integer, nullable=False)
    base_price_snapshot = Column(Money, nullable=False)
    final_price_snapshot = Column(Money, nullable=False)
    note = Column(String(500), nullable=True)

    customizations = relationship(
        "OrderItemCustomization",
        lazy="selectin",
        order_by="OrderItemCustomization.id",
    )


class OrderItemCustomization(Base):
    __tablename__ = "order_item_customizations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False, index=True)
    type = Column(Enum(CustomizationType), nullable=False)
    reference_id = Column(Integer, nullable=False)
    name_snapshot = Column(String(100), nullable=False)
    price_impact = Column(Money, nullable=False)


class FulfillmentDetails(Base):
    """Delivery / pickup / dine-in specifics for exactly one order."""
    __tablename__ = "fulfillment_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)

    contact_name = Column(String(100), nullable=True)
    phone_number = Column(String(30), nullable=True)

    # Delivery
    street = Column(String(255), nullable=True)
    building = Column(String(100), nullable=True)
    state = Column(String(80), nullable=True)
    location_note = Column(Text, nullable=True)

    # Pickup
    pickup_time = Column(DateTime(timezone=True), nullable=True)

    # Dine-in
    reservation_time = Column(DateTime(timezone=True), nullable=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True, index=True)

    order = relationship("Order", back_populates="fulfillment")


# =============================================================================
# TABLES
# =============================================================================

class Table(Base):
    """
    A dine-in table. Availability is not stored; it is derived from
    reservations on fulfillment details.
    """
    __tablename__ = "tables"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_tables_restaurant_number"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    table_number = Column(String(20), nullable=False)
    capacity = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Table #{self.id} - {self.table_number}>"
