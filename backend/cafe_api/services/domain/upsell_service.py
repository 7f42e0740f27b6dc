"""
Upsell Domain Service.

Computes the "spend a little more" offer: the distance to the next full
hundred plus one more hundred, rewarded with 10 mustaches per 50 rupees.
"""

from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe_api.models import Cart, UpsellData
from cafe_shared.config.constants import Rewards
from cafe_shared.config.logging import cart_logger as logger
from cafe_shared.config.settings import Settings, settings
from cafe_shared.infrastructure.db import safe_commit
from cafe_shared.utils.exceptions import CartNotFoundError, ValidationError
from cafe_shared.utils.identifiers import new_id
from cafe_shared.utils.schemas import UpsellOutput


class UpsellCalculation(NamedTuple):
    next_hundred: int
    upsell_amount: int
    mustaches_to_give: int


def calculate_upsell(current_total: float) -> UpsellCalculation:
    """
    Upsell arithmetic on the whole-rupee part of the total.

    340 -> (60, 160, 30); 400 -> (100, 200, 40). A total that is already a
    multiple of 100 targets the next bucket.
    """
    if current_total < 0:
        raise ValidationError("current_total must not be negative", current_total=current_total)

    total = int(current_total)
    bucket = Rewards.UPSELL_BUCKET
    next_hundred = (total // bucket + 1) * bucket - total
    upsell_amount = next_hundred + Rewards.UPSELL_EXTRA
    mustaches = (upsell_amount // Rewards.UPSELL_RUPEE_STEP) * Rewards.UPSELL_MUSTACHES_PER_STEP
    return UpsellCalculation(next_hundred, upsell_amount, mustaches)


class UpsellService:
    """Persists upsell offers. The latest offer per cart is the one honored."""

    def __init__(self, db: Session, config: Settings | None = None):
        self._db = db
        self._settings = config or settings

    def compute_upsell(
        self,
        cart_id: str,
        cafe_id: int,
        current_total: float | None = None,
    ) -> UpsellOutput:
        """Compute and record an offer; ``current_total`` defaults to the cart total."""
        cart = self._db.scalar(select(Cart).where(Cart.cart_id == cart_id))
        if cart is None:
            raise CartNotFoundError(cart_id)

        total = cart.total_amount if current_total is None else current_total
        calc = calculate_upsell(total)

        offer = UpsellData(
            upsell_id=new_id(),
            cart_id=cart_id,
            cafe_id=cafe_id,
            current_amount=total,
            target_amount=calc.next_hundred,
            mustaches_to_give=calc.mustaches_to_give,
            offer_accepted=False,
        )
        self._db.add(offer)
        upsell_id = offer.upsell_id
        safe_commit(self._db, "compute_upsell", cart_id=cart_id)

        logger.info(
            "Upsell offer recorded",
            cart_id=cart_id,
            upsell_id=upsell_id,
            current_total=total,
            target_amount=calc.next_hundred,
            mustaches=calc.mustaches_to_give,
        )
        return UpsellOutput(
            upsell_id=upsell_id,
            upsell_amount=calc.upsell_amount,
            target_amount=calc.next_hundred,
            mustaches_to_give=calc.mustaches_to_give,
        )

    def latest_offer(self, cart_id: str) -> UpsellData | None:
        return self._db.scalar(
            select(UpsellData)
            .where(UpsellData.cart_id == cart_id)
            .order_by(UpsellData.created_at.desc())
            .limit(1)
        )
