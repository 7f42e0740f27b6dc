"""
API routers.
"""

from .sessions import router as sessions_router
from .cart import router as cart_router
from .orders import router as orders_router
from .loyalty import router as loyalty_router
from .personalisation import router as personalisation_router

__all__ = [
    "sessions_router",
    "cart_router",
    "orders_router",
    "loyalty_router",
    "personalisation_router",
]
