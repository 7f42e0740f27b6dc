"""
Loyalty profile endpoint.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cafe_api.routers.deps import current_user_id
from cafe_api.services.domain import LoyaltyService
from cafe_shared.infrastructure.db import get_db
from cafe_shared.rate_limit import limiter
from cafe_shared.utils.schemas import LoyaltyProfileOutput


router = APIRouter(prefix="/api/loyalty", tags=["loyalty"])


@router.get("/profile", response_model=LoyaltyProfileOutput)
@limiter.limit("60/minute")
def loyalty_profile(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> LoyaltyProfileOutput:
    """Balance, tier, monthly earnings and paid order count of the caller."""
    return LoyaltyService(db).profile(user_id)
