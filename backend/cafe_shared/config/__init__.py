"""
Configuration module: Settings, logging, constants.
"""

from cafe_shared.config.settings import settings, get_settings, Settings, DATABASE_URL
from cafe_shared.config.logging import get_logger, setup_logging
from cafe_shared.config.constants import (
    SessionStatus,
    SessionRole,
    CartStatus,
    CartItemStatus,
    CartInsertType,
    OrderStatus,
    PaymentStatus,
    TransactionType,
    LoyaltyTier,
    Limits,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "Settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "SessionStatus",
    "SessionRole",
    "CartStatus",
    "CartItemStatus",
    "CartInsertType",
    "OrderStatus",
    "PaymentStatus",
    "TransactionType",
    "LoyaltyTier",
    "Limits",
]
