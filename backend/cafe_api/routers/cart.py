"""
Shared cart endpoints.
Thin controllers: all rules live in CartService and UpsellService.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cafe_api.routers.deps import current_user_id
from cafe_api.services.domain import CartService, UpsellService
from cafe_shared.infrastructure.db import get_db
from cafe_shared.rate_limit import limiter
from cafe_shared.utils.schemas import (
    AddItemsOutput,
    AddItemsRequest,
    CartOutput,
    CartUpdateOutput,
    GetCartRequest,
    SpecialRequestRequest,
    UpdateCrossSellsRequest,
    UpdateCustomizationsRequest,
    UpdateQuantityRequest,
    UpsellOutput,
    UpsellRequest,
)


router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.post("/add", response_model=AddItemsOutput)
@limiter.limit("60/minute")
def add_items(
    request: Request,
    body: AddItemsRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> AddItemsOutput:
    """Add items to the cart, creating it on first use."""
    return CartService(db).add_items(body, user_id)


@router.post("/get", response_model=CartOutput)
@limiter.limit("120/minute")
def get_cart(
    request: Request,
    body: GetCartRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartOutput:
    return CartService(db).get_cart(body.cart_id, body.session_id, user_id)


@router.post("/quantity", response_model=CartUpdateOutput)
@limiter.limit("60/minute")
def update_quantity(
    request: Request,
    body: UpdateQuantityRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartUpdateOutput:
    """Set an item's quantity; 0 cancels the item."""
    return CartService(db).update_quantity(body.cart_item_id, body.quantity, body.cart_amount)


@router.post("/customizations", response_model=CartUpdateOutput)
@limiter.limit("60/minute")
def update_customizations(
    request: Request,
    body: UpdateCustomizationsRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartUpdateOutput:
    return CartService(db).update_customizations(
        body.cart_item_id, body.price, body.customization_ids, body.cart_amount
    )


@router.post("/cross-sells", response_model=CartUpdateOutput)
@limiter.limit("60/minute")
def update_cross_sell_items(
    request: Request,
    body: UpdateCrossSellsRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartUpdateOutput:
    return CartService(db).update_cross_sell_items(
        body.cart_item_id, body.price, body.cross_sell_item_ids, body.cart_amount
    )


@router.post("/special-request", response_model=CartUpdateOutput)
@limiter.limit("60/minute")
def add_special_request(
    request: Request,
    body: SpecialRequestRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartUpdateOutput:
    return CartService(db).add_special_request(body.cart_item_id, body.special_request)


@router.post("/upsell", response_model=UpsellOutput)
@limiter.limit("30/minute")
def compute_upsell(
    request: Request,
    body: UpsellRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> UpsellOutput:
    """Record a "spend a little more" offer for the cart."""
    return UpsellService(db).compute_upsell(body.cart_id, body.cafe_id, body.current_total)
