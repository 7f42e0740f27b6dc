"""
Personalised suggestions and favourites.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from cafe_api.routers.deps import current_user_id
from cafe_api.services.domain import PersonalizationService
from cafe_shared.infrastructure.db import get_db
from cafe_shared.rate_limit import limiter
from cafe_shared.utils.schemas import FavouriteOutput, FavouriteRequest, PersonalisedOutput


router = APIRouter(prefix="/api", tags=["personalisation"])


@router.get("/personalisation", response_model=PersonalisedOutput)
@limiter.limit("60/minute")
def personalised_data(
    request: Request,
    cafe_id: int = Query(gt=0),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> PersonalisedOutput:
    """Repeat order, most recent order and favourites at a cafe."""
    return PersonalizationService(db).personalised_data(user_id, cafe_id)


@router.post("/favourites", response_model=FavouriteOutput)
@limiter.limit("30/minute")
def add_favourite(
    request: Request,
    body: FavouriteRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> FavouriteOutput:
    return PersonalizationService(db).add_favourite(user_id, body.cafe_id, body.item_id)
