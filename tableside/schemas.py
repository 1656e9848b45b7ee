"""
Pydantic Schemas for Request/Response Validation

Request bodies carry only shape validation; business rules (required
fulfillment fields, price signs, quantity bounds) are enforced by the
services so the same messages come back whichever client calls.

Money travels as Decimal and is rendered as a string with two decimals.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from tableside.models import CustomizationType, FulfillmentType, OrderStatus, UserRole
from tableside.services.catalog import DeleteOutcome


# =============================================================================
# COMMON
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    identity_service: str
    blob_store: str
    timestamp: datetime


# =============================================================================
# AUTH & USERS
# =============================================================================

class SignUpRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100, examples=["Jane Doe"])
    email: Optional[str] = Field(None, max_length=255, examples=["jane@example.com"])
    password: Optional[str] = Field(None, max_length=128)


class SignInRequest(BaseModel):
    email: Optional[str] = Field(None, examples=["jane@example.com"])
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    created_at: datetime

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    success: bool = True
    token: str
    user: UserResponse


class UserUpdateRequest(BaseModel):
    """Only fields present in the body are changed."""
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)


class PasswordChangeRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, max_length=128)


class RoleUpdateRequest(BaseModel):
    role: Optional[str] = Field(None, examples=["ADMIN"])


class AdminUserResponse(UserResponse):
    order_count: int = 0


class UserStatsResponse(BaseModel):
    total_users: int
    today_users: int
    admin_count: int
    customer_count: int


# =============================================================================
# RESTAURANTS
# =============================================================================

class RestaurantFields(BaseModel):
    description: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=80)
    state: Optional[str] = Field(None, max_length=80)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=80)
    logo_url: Optional[str] = Field(None, max_length=500)
    cover_image_url: Optional[str] = Field(None, max_length=500)
    delivery_enabled: Optional[bool] = None
    delivery_fee: Optional[Decimal] = None
    min_order_amount: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = Field(None, examples=["0.0800"])


class RestaurantCreate(RestaurantFields):
    name: Optional[str] = Field(None, max_length=120, examples=["Trattoria Roma"])


class RestaurantUpdate(RestaurantFields):
    name: Optional[str] = Field(None, max_length=120)


class RestaurantPublicResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    country: Optional[str]
    logo_url: Optional[str]
    cover_image_url: Optional[str]
    delivery_enabled: bool
    delivery_fee: Optional[Decimal]
    min_order_amount: Optional[Decimal]

    class Config:
        from_attributes = True


class RestaurantResponse(RestaurantPublicResponse):
    tax_rate: Optional[Decimal]
    created_at: datetime
    updated_at: Optional[datetime]


class RestaurantDetailResponse(RestaurantResponse):
    categories_count: int = 0
    products_count: int = 0
    tables_count: int = 0


# =============================================================================
# CATALOG
# =============================================================================

class CategoryCreate(BaseModel):
    restaurant_id: int
    name: Optional[str] = Field(None, max_length=100, examples=["Pizzas"])


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)


class CategoryResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    created_at: datetime

    class Config:
        from_attributes = True


class ExtraCreate(BaseModel):
    restaurant_id: int
    name: Optional[str] = Field(None, max_length=100, examples=["Extra cheese"])
    price: Optional[Decimal] = Field(None, examples=["1.00"])


class ExtraUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = None


class ExtraResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    price: Decimal
    product_count: int = 0

    class Config:
        from_attributes = True


class ComponentCreate(BaseModel):
    restaurant_id: int
    name: Optional[str] = Field(None, max_length=100, examples=["Onions"])
    cost_impact: Optional[Decimal] = Field(None, examples=["0.50"])


class ComponentUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    cost_impact: Optional[Decimal] = None


class ComponentResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    cost_impact: Decimal
    product_count: int = 0

    class Config:
        from_attributes = True


class ComponentLinkRequest(BaseModel):
    component_id: int
    is_removable: bool = True


class ComponentBrief(BaseModel):
    id: int
    name: str
    cost_impact: Decimal

    class Config:
        from_attributes = True


class ExtraBrief(BaseModel):
    id: int
    name: str
    price: Decimal

    class Config:
        from_attributes = True


class ProductComponentResponse(BaseModel):
    component_id: int
    is_removable: bool
    component: ComponentBrief

    class Config:
        from_attributes = True


class ProductExtraResponse(BaseModel):
    extra_id: int
    extra: ExtraBrief

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    restaurant_id: int
    category_id: Optional[int] = None
    name: Optional[str] = Field(None, max_length=150, examples=["Margherita"])
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, examples=["12.99"])
    image_url: Optional[str] = Field(None, max_length=500)
    components: List[ComponentLinkRequest] = Field(default_factory=list)
    extra_ids: List[int] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    """Only fields present in the body are changed; link lists replace."""
    category_id: Optional[int] = None
    name: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = None
    base_price: Optional[Decimal] = None
    image_url: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None
    components: Optional[List[ComponentLinkRequest]] = None
    extra_ids: Optional[List[int]] = None


class ProductResponse(BaseModel):
    id: int
    restaurant_id: int
    category_id: int
    name: str
    description: Optional[str]
    base_price: Decimal
    image_url: Optional[str]
    is_active: bool
    components: List[ProductComponentResponse] = []
    extras: List[ProductExtraResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class ProductDeleteResponse(BaseModel):
    success: bool = True
    outcome: DeleteOutcome
    product_id: int
    message: str


class CategoryDetailResponse(CategoryResponse):
    products: List[ProductResponse] = []


# =============================================================================
# CART
# =============================================================================

class CustomizationRequest(BaseModel):
    type: str = Field(..., examples=["EXTRA", "REMOVED_COMPONENT"])
    reference_id: int


class CartItemCreate(BaseModel):
    product_id: Optional[int] = None
    quantity: int = Field(default=1, examples=[2])
    customizations: List[CustomizationRequest] = Field(default_factory=list)
    note: Optional[str] = Field(None, max_length=500)


class CartItemUpdate(BaseModel):
    """Only fields present in the body are changed."""
    quantity: Optional[int] = None
    note: Optional[str] = Field(None, max_length=500)


class CustomizationResponse(BaseModel):
    type: CustomizationType
    reference_id: int
    name_snapshot: str
    price_impact: Decimal

    class Config:
        from_attributes = True


class ProductBrief(BaseModel):
    id: int
    name: str
    image_url: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class CartItemResponse(BaseModel):
    id: int
    product_id: int
    product: Optional[ProductBrief]
    quantity: int
    base_price_snapshot: Decimal
    final_price_snapshot: Decimal
    note: Optional[str]
    customizations: List[CustomizationResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class CartTotalsResponse(BaseModel):
    total_amount: Decimal
    item_count: int
    unique_items: int

    class Config:
        from_attributes = True


class CartResponse(BaseModel):
    items: List[CartItemResponse]
    totals: CartTotalsResponse


# =============================================================================
# ORDERS
# =============================================================================

class FulfillmentDetailsRequest(BaseModel):
    contact_name: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=30, examples=["555-123-4567"])
    street: Optional[str] = Field(None, max_length=255)
    building: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=80)
    location_note: Optional[str] = None
    pickup_time: Optional[datetime] = Field(None, examples=["2026-01-15T18:30:00"])
    reservation_time: Optional[datetime] = None
    table_id: Optional[int] = None


class CheckoutRequest(BaseModel):
    restaurant_id: Optional[int] = None
    fulfillment_type: Optional[str] = Field(None, examples=["DELIVERY", "PICKUP", "DINE_IN"])
    fulfillment_details: FulfillmentDetailsRequest = Field(default_factory=FulfillmentDetailsRequest)


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = Field(None, examples=["PREPARING"])


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    product_name_snapshot: str
    quantity: int
    base_price_snapshot: Decimal
    final_price_snapshot: Decimal
    note: Optional[str]
    customizations: List[CustomizationResponse] = []

    class Config:
        from_attributes = True


class FulfillmentResponse(BaseModel):
    contact_name: Optional[str]
    phone_number: Optional[str]
    street: Optional[str]
    building: Optional[str]
    state: Optional[str]
    location_note: Optional[str]
    pickup_time: Optional[datetime]
    reservation_time: Optional[datetime]
    table_id: Optional[int]

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: int
    user_id: int
    restaurant_id: int
    fulfillment_type: FulfillmentType
    total_amount: Decimal
    status: OrderStatus
    created_at: datetime
    updated_at: Optional[datetime]
    paid_at: Optional[datetime]
    items: List[OrderItemResponse] = []
    fulfillment: Optional[FulfillmentResponse]

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class OrderStatsResponse(BaseModel):
    total_orders: int
    today_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: Decimal

    class Config:
        from_attributes = True


# =============================================================================
# TABLES
# =============================================================================

class TableCreate(BaseModel):
    restaurant_id: int
    table_number: Optional[str] = Field(None, max_length=20, examples=["12"])
    capacity: Optional[int] = Field(None, examples=[4])


class TableUpdate(BaseModel):
    """Only fields present in the body are changed."""
    table_number: Optional[str] = Field(None, max_length=20)
    capacity: Optional[int] = None


class TableResponse(BaseModel):
    id: int
    restaurant_id: int
    table_number: str
    capacity: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class TableAvailabilityResponse(BaseModel):
    table_id: int
    reservation_time: datetime
    available: bool


# =============================================================================
# ADMIN VIEWS
# =============================================================================

class UserDetailResponse(BaseModel):
    user: UserResponse
    recent_orders: List[OrderResponse] = []
