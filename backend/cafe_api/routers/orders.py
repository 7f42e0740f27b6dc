"""
Order endpoints: placement, per-session summary and cancellation.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cafe_api.routers.deps import current_user_id
from cafe_api.services.domain import OrderService
from cafe_api.services.notifications import PushNotificationDispatcher, get_push_dispatcher
from cafe_shared.infrastructure.db import get_db
from cafe_shared.rate_limit import limiter
from cafe_shared.utils.schemas import (
    OrderDetailsOutput,
    OrderStatusOutput,
    PlaceOrderOutput,
    PlaceOrderRequest,
    SessionRequest,
)


router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("/place", response_model=PlaceOrderOutput)
@limiter.limit("10/minute")
def place_order(
    request: Request,
    body: PlaceOrderRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    dispatcher: PushNotificationDispatcher = Depends(get_push_dispatcher),
) -> PlaceOrderOutput:
    """
    Place an order for the cart.

    Not idempotent: retrying after a 500 with an ``X-Order-Id`` header
    creates a second order. Reconcile with /api/orders/details first.
    """
    return OrderService(db, dispatcher=dispatcher).place_order(body, user_id)


@router.post("/details", response_model=OrderDetailsOutput)
@limiter.limit("60/minute")
def fetch_order_details(
    request: Request,
    body: SessionRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    dispatcher: PushNotificationDispatcher = Depends(get_push_dispatcher),
) -> OrderDetailsOutput:
    return OrderService(db, dispatcher=dispatcher).fetch_order_details(body.session_id, user_id)


@router.post("/{order_id}/cancel", response_model=OrderStatusOutput)
@limiter.limit("10/minute")
def cancel_order(
    request: Request,
    order_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    dispatcher: PushNotificationDispatcher = Depends(get_push_dispatcher),
) -> OrderStatusOutput:
    return OrderService(db, dispatcher=dispatcher).cancel_order(order_id, user_id)
