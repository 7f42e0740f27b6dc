"""
SQLAlchemy ORM Models Package.

- base: Base class, TimestampMixin, enum_column
- cafe: Cafe, CafeTable, AppUser, MenuItem, ItemCustomization, ItemFavorite,
  FcmToken, CafeAdvertisement, CategoryPopularity
- session: TableSession, UserSession
- cart: Cart, CartItem, UpgradeSuggestion
- order: Order, Discount, UpsellData
- loyalty: RewardTransaction
"""

# Base classes
from .base import Base, TimestampMixin

# Catalog
from .cafe import (
    Cafe,
    CafeTable,
    AppUser,
    MenuItem,
    ItemCustomization,
    ItemFavorite,
    FcmToken,
    CafeAdvertisement,
    CategoryPopularity,
)

# Sessions
from .session import TableSession, UserSession

# Carts
from .cart import Cart, CartItem, UpgradeSuggestion

# Orders
from .order import Order, Discount, UpsellData

# Loyalty
from .loyalty import RewardTransaction

__all__ = [
    "Base",
    "TimestampMixin",
    "Cafe",
    "CafeTable",
    "AppUser",
    "MenuItem",
    "ItemCustomization",
    "ItemFavorite",
    "FcmToken",
    "CafeAdvertisement",
    "CategoryPopularity",
    "TableSession",
    "UserSession",
    "Cart",
    "CartItem",
    "UpgradeSuggestion",
    "Order",
    "Discount",
    "UpsellData",
    "RewardTransaction",
]
