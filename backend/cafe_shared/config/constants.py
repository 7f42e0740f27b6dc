"""
Centralized constants for the backend application.

Status values are closed str-valued enums. Every state change goes through a
transition table below and ``ensure_transition``.

Usage:
    from cafe_shared.config.constants import CartItemStatus, ensure_transition

    ensure_transition("CartItem", item.status, CartItemStatus.ORDERED, CART_ITEM_TRANSITIONS)
"""

from enum import Enum
from typing import Final


# =============================================================================
# Entity Status Enums
# =============================================================================


class SessionStatus(str, Enum):
    """Table session status."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


class UserSessionStatus(str, Enum):
    """Per-user join record status."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


class SessionRole(str, Enum):
    """Role of a diner inside a session."""

    HOST = "Host"
    GUEST = "Guest"


class CartStatus(str, Enum):
    """Cart status."""

    ACTIVE = "Active"
    ORDERED = "Ordered"


class CartItemStatus(str, Enum):
    """Cart item status. CANCELED is terminal."""

    ACTIVE = "Active"
    ORDERED = "Ordered"
    CANCELED = "Canceled"


class CartInsertType(str, Enum):
    """Acquisition channel of a cart item (``added_via``)."""

    DIRECT = "Direct"
    FROM_CURATED_CART = "FromCuratedCart"
    CROSS_SELL_FOCUS = "CrossSellFocus"
    TOP_PICKS = "TopPicks"
    UPGRADE_CART_AI = "UpgradeCartAi"
    CROSS_SELL_CHECKOUT = "CrossSellCheckout"


class OrderStatus(str, Enum):
    """Order status. Kitchen states beyond CONFIRMED live outside this service."""

    PLACED = "Placed"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    """Order payment status."""

    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"

    # Orders still open on the table bill
    @classmethod
    def unsettled(cls) -> list["PaymentStatus"]:
        return [cls.PENDING, cls.FAILED]


class TransactionType(str, Enum):
    """Reward ledger entry type."""

    CREDITED = "credited"
    DEBITED = "debited"


class SuggestionAction(str, Enum):
    """User action recorded against an upgrade-cart suggestion."""

    PENDING = "pending"
    ADDED = "added"


class AdStatus(str, Enum):
    """Advertisement status (read-only here)."""

    ACTIVE = "active"
    INACTIVE = "inactive"


# =============================================================================
# Status Transitions
# =============================================================================

SESSION_TRANSITIONS: Final[dict[SessionStatus, frozenset[SessionStatus]]] = {
    SessionStatus.ACTIVE: frozenset({SessionStatus.INACTIVE}),
    SessionStatus.INACTIVE: frozenset(),  # Terminal state
}

CART_TRANSITIONS: Final[dict[CartStatus, frozenset[CartStatus]]] = {
    CartStatus.ACTIVE: frozenset({CartStatus.ORDERED}),
    # Re-ordering an already ordered cart is allowed: order placement has no
    # idempotency key and a repeated call must still go through.
    CartStatus.ORDERED: frozenset({CartStatus.ORDERED}),
}

CART_ITEM_TRANSITIONS: Final[dict[CartItemStatus, frozenset[CartItemStatus]]] = {
    CartItemStatus.ACTIVE: frozenset({CartItemStatus.ORDERED, CartItemStatus.CANCELED}),
    CartItemStatus.ORDERED: frozenset({CartItemStatus.ORDERED}),
    CartItemStatus.CANCELED: frozenset(),  # Terminal state
}

ORDER_TRANSITIONS: Final[dict[OrderStatus, frozenset[OrderStatus]]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset(),  # Terminal state
}


def can_transition(current: Enum, target: Enum, table: dict) -> bool:
    """Return True when ``current -> target`` is allowed by ``table``."""
    return target in table[current]


def ensure_transition(entity: str, current: Enum, target: Enum, table: dict) -> None:
    """
    Raise ConflictError when ``current -> target`` is not allowed.

    A KeyError here means a status enum gained a member without a row in its
    transition table.
    """
    if not can_transition(current, target, table):
        from cafe_shared.utils.exceptions import InvalidTransitionError

        raise InvalidTransitionError(entity, current.value, target.value)


# =============================================================================
# Loyalty
# =============================================================================


class LoyaltyTier:
    """Loyalty tier names and lower bounds (mustaches)."""

    DRIPSTARTER: Final[str] = "Dripstarter"
    BREW_BUDDY: Final[str] = "Brew Buddy"
    BEAN_BOSS: Final[str] = "Bean Boss"
    CAFFEINE_ROYALTY: Final[str] = "Caffeine Royalty"

    NO_MORE_LEVELS: Final[str] = "No more levels"

    # (lower bound, name), ascending
    THRESHOLDS: Final[tuple[tuple[int, str], ...]] = (
        (0, DRIPSTARTER),
        (100, BREW_BUDDY),
        (300, BEAN_BOSS),
        (700, CAFFEINE_ROYALTY),
    )


class Rewards:
    """Reward arithmetic constants."""

    # One mustache per this many rupees of cart total
    RUPEES_PER_MUSTACHE: Final[int] = 50
    # Upsell: 10 mustaches per 50 rupees of upsell amount
    UPSELL_RUPEE_STEP: Final[int] = 50
    UPSELL_MUSTACHES_PER_STEP: Final[int] = 10
    UPSELL_BUCKET: Final[int] = 100
    UPSELL_EXTRA: Final[int] = 100


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MAX_QUANTITY: Final[int] = 99
    MAX_SPECIAL_REQUEST_LENGTH: Final[int] = 500
    MAX_ITEMS_PER_REQUEST: Final[int] = 50
    TABLE_CODE_DIGITS: Final[int] = 4
    FAVOURITES_LIMIT: Final[int] = 3


class Notifications:
    """Push notification copy."""

    ORDER_TITLE: Final[str] = "Order Update"
    ORDER_BODY_TEMPLATE: Final[str] = "New order received for Table No: {table}"
