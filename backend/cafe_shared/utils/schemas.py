"""
Shared Pydantic schemas used across the application.

Request bodies validate shape and ranges; state rules (session active, item not
canceled, totals) are enforced by the domain services.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from cafe_shared.config.constants import (
    CartInsertType,
    CartItemStatus,
    CartStatus,
    Limits,
    OrderStatus,
    PaymentStatus,
    SessionRole,
)


# =============================================================================
# Session Schemas
# =============================================================================


class CheckInRequest(BaseModel):
    """Check in to a table (QR scan)."""

    table_id: str = Field(min_length=1, max_length=50)
    cafe_id: int = Field(gt=0)


class CheckInOutput(BaseModel):
    """Resolved session for a check-in."""

    session_id: str
    role: SessionRole
    table_code: str
    created: bool


class SessionRequest(BaseModel):
    """Request addressing a single session."""

    session_id: str = Field(min_length=1, max_length=64)


class SessionStatusOutput(BaseModel):
    session_id: str
    active: bool


class VerifyTableCodeRequest(BaseModel):
    """Guest verification of the table code shown to the host."""

    session_id: str = Field(min_length=1, max_length=64)
    table_code: str = Field(pattern=r"^[0-9]{4}$")


class VerifyTableCodeOutput(BaseModel):
    session_id: str
    table_code: str


class InvalidateOutput(BaseModel):
    session_id: str
    closed_user_sessions: int


# =============================================================================
# Cart Schemas
# =============================================================================


class CartItemInput(BaseModel):
    """One item added to the cart. ``price`` is the unit price with extras."""

    cart_item_id: str | None = Field(default=None, max_length=64)
    item_id: int = Field(gt=0)
    quantity: int = Field(ge=1, le=Limits.MAX_QUANTITY)
    price: float = Field(ge=0)
    special_request: str | None = Field(
        default=None, max_length=Limits.MAX_SPECIAL_REQUEST_LENGTH
    )
    customization_ids: list[int] = Field(default_factory=list)
    cross_sell_item_ids: list[int] = Field(default_factory=list)
    added_via: CartInsertType = CartInsertType.DIRECT


class AddItemsRequest(BaseModel):
    """Add items to a (possibly new) cart."""

    cart_id: str | None = Field(default=None, max_length=64)
    session_id: str = Field(min_length=1, max_length=64)
    cafe_id: int = Field(gt=0)
    items: list[CartItemInput] = Field(max_length=Limits.MAX_ITEMS_PER_REQUEST)
    total_amount: float = Field(ge=0)
    discount_amount: float = Field(default=0, ge=0)


class AddItemsOutput(BaseModel):
    cart_id: str
    warnings: list[str] = Field(default_factory=list)


class UpdateQuantityRequest(BaseModel):
    """Set the quantity of a cart item. Zero cancels it."""

    cart_item_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(ge=0, le=Limits.MAX_QUANTITY)
    cart_amount: float = Field(ge=0)


class UpdateCustomizationsRequest(BaseModel):
    """Replace the customizations of a cart item."""

    cart_item_id: str = Field(min_length=1, max_length=64)
    price: float = Field(ge=0)
    customization_ids: list[int]
    cart_amount: float = Field(ge=0)


class UpdateCrossSellsRequest(BaseModel):
    """Replace the cross-sell items attached to a cart item."""

    cart_item_id: str = Field(min_length=1, max_length=64)
    price: float = Field(ge=0)
    cross_sell_item_ids: list[int]
    cart_amount: float = Field(ge=0)


class SpecialRequestRequest(BaseModel):
    cart_item_id: str = Field(min_length=1, max_length=64)
    special_request: str = Field(max_length=Limits.MAX_SPECIAL_REQUEST_LENGTH)


class CartUpdateOutput(BaseModel):
    """Result of a cart item mutation."""

    cart_item_id: str
    status: CartItemStatus
    quantity: int
    cart_total: float


class GetCartRequest(BaseModel):
    cart_id: str = Field(min_length=1, max_length=64)
    session_id: str = Field(min_length=1, max_length=64)


class CustomizationRef(BaseModel):
    id: int
    name: str


class CartItemOutput(BaseModel):
    """Cart item with resolved customization names."""

    cart_item_id: str
    item_id: int
    item_name: str | None = None
    quantity: int
    price: float
    status: CartItemStatus
    special_request: str | None = None
    added_via: CartInsertType
    customizations: list[CustomizationRef] = Field(default_factory=list)
    cross_sell_item_ids: list[int] = Field(default_factory=list)


class CartOutput(BaseModel):
    cart_id: str
    session_id: str
    status: CartStatus
    total_amount: float
    discount_amount: float
    items: list[CartItemOutput]


class UpsellRequest(BaseModel):
    """Compute a "spend a little more" offer for a cart."""

    cart_id: str = Field(min_length=1, max_length=64)
    cafe_id: int = Field(gt=0)
    current_total: float | None = Field(default=None, ge=0)


class UpsellOutput(BaseModel):
    upsell_id: str
    upsell_amount: int
    target_amount: int
    mustaches_to_give: int


# =============================================================================
# Notification Schemas
# =============================================================================


class TokenDispatchResult(BaseModel):
    """Per-device push outcome. ``token`` is masked."""

    token: str
    ok: bool
    error: str | None = None


class DispatchReport(BaseModel):
    """Best-effort push batch outcome."""

    sent: int = 0
    failed: int = 0
    skipped: bool = False
    results: list[TokenDispatchResult] = Field(default_factory=list)


# =============================================================================
# Order Schemas
# =============================================================================


class PlaceOrderRequest(BaseModel):
    """Place an order for a cart. Amounts are validated by the service."""

    cart_id: str = Field(max_length=64)
    session_id: str = Field(max_length=64)
    cafe_id: int = Field(gt=0)
    total_amount: float
    discount: float = Field(default=0, ge=0)
    special_request: str | None = Field(
        default=None, max_length=Limits.MAX_SPECIAL_REQUEST_LENGTH
    )


class PlaceOrderOutput(BaseModel):
    order_id: str
    rewards_earned: int
    notification: DispatchReport
    warnings: list[str] = Field(default_factory=list)


class OrderStatusOutput(BaseModel):
    order_id: str
    status: OrderStatus


class OrderItemOutput(BaseModel):
    """Ordered item with resolved names."""

    cart_item_id: str
    item_id: int
    name: str | None = None
    quantity: int
    price: float
    customizations: list[str] = Field(default_factory=list)
    cross_sell_items: list[str] = Field(default_factory=list)
    special_request: str | None = None


class OrderSummary(BaseModel):
    order_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    order_time: datetime
    total_amount: float
    discount: float = 0
    special_request: str | None = None
    items: list[OrderItemOutput] = Field(default_factory=list)


class UserOrderGroup(BaseModel):
    """Orders of one diner in the session with cumulative amounts."""

    user_id: int
    user_name: str | None = None
    total_amount: float
    total_discount: float
    orders: list[OrderSummary]


class AdvertisementOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    image_url: str | None = None


class OrderDetailsOutput(BaseModel):
    session_id: str
    groups: list[UserOrderGroup]
    timestamp: datetime | None = None
    advertisement: AdvertisementOutput | None = None


# =============================================================================
# Loyalty Schemas
# =============================================================================


class TierInfo(BaseModel):
    current_level: str
    next_level: str
    due_for_next_level: int


class LoyaltyProfileOutput(BaseModel):
    user_id: int
    name: str | None = None
    phone: str | None = None
    joined_date: date | None = None
    tier: TierInfo
    monthly_earned: int
    balance: int
    total_orders: int


# =============================================================================
# Personalization Schemas
# =============================================================================


class MenuItemSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    cafe_id: int
    name: str
    price: float
    image_url: str | None = None
    is_customizable: bool = False


class PersonalisedOutput(BaseModel):
    repeat_order: list[MenuItemSummary] = Field(default_factory=list)
    recent_order: list[MenuItemSummary] = Field(default_factory=list)
    favourites: list[MenuItemSummary] = Field(default_factory=list)


class FavouriteRequest(BaseModel):
    cafe_id: int = Field(gt=0)
    item_id: int = Field(gt=0)


class FavouriteOutput(BaseModel):
    item_id: int
    cafe_id: int
    created: bool
