"""
Domain Services - application layer.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Model (entity)

Usage:
    from cafe_api.services.domain import OrderService

    # In router
    service = OrderService(db)
    result = service.place_order(body, user_id)
"""

from .session_service import SessionService
from .cart_service import CartService
from .upsell_service import UpsellService, calculate_upsell
from .order_service import OrderService, select_reward
from .loyalty_service import LoyaltyService, tier_for
from .personalization_service import PersonalizationService, find_repeat_signature

__all__ = [
    "SessionService",
    "CartService",
    "UpsellService",
    "calculate_upsell",
    "OrderService",
    "select_reward",
    "LoyaltyService",
    "tier_for",
    "PersonalizationService",
    "find_repeat_signature",
]
