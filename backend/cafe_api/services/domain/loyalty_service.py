"""
Loyalty Domain Service.

Mustache ledger: balances, monthly aggregates, tiers and the profile view.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafe_api.models import AppUser, Order, RewardTransaction
from cafe_shared.config.constants import LoyaltyTier, PaymentStatus, TransactionType
from cafe_shared.config.logging import loyalty_logger as logger
from cafe_shared.config.settings import Settings, settings
from cafe_shared.utils.clock import cafe_now, start_of_month
from cafe_shared.utils.exceptions import NotFoundError, ValidationError
from cafe_shared.utils.schemas import LoyaltyProfileOutput, TierInfo


def tier_for(balance: int) -> TierInfo:
    """
    Tier of a mustache balance.

    99 -> Dripstarter (due 1); 100 -> Brew Buddy (due 200);
    700 -> Caffeine Royalty (due 0, no next level).
    """
    balance = max(balance, 0)
    current = LoyaltyTier.THRESHOLDS[0][1]
    for lower, name in LoyaltyTier.THRESHOLDS:
        if balance < lower:
            return TierInfo(
                current_level=current,
                next_level=name,
                due_for_next_level=lower - balance,
            )
        current = name
    return TierInfo(
        current_level=current,
        next_level=LoyaltyTier.NO_MORE_LEVELS,
        due_for_next_level=0,
    )


class LoyaltyService:
    """Domain service for the reward ledger."""

    def __init__(self, db: Session, config: Settings | None = None):
        self._db = db
        self._settings = config or settings

    def _credited_sum(self, *conditions) -> int:
        total = self._db.scalar(
            select(func.coalesce(func.sum(RewardTransaction.mustaches), 0)).where(
                RewardTransaction.transaction_type == TransactionType.CREDITED,
                *conditions,
            )
        )
        return int(total or 0)

    def balance(self, user_id: int) -> int:
        """Sum of credited mustaches."""
        return self._credited_sum(RewardTransaction.user_id == user_id)

    def monthly_earned(self, user_id: int, now: datetime | None = None) -> int:
        """Credited mustaches since the first day of the current month."""
        now = now or cafe_now(self._settings.cafe_timezone)
        return self._credited_sum(
            RewardTransaction.user_id == user_id,
            RewardTransaction.earned_date >= start_of_month(now),
        )

    def credit(
        self,
        user_id: int,
        cafe_id: int,
        session_id: str,
        mustaches: int,
        earned_date: datetime | None = None,
    ) -> RewardTransaction:
        """
        Append a credited entry. Flushes but does not commit; the caller owns
        the transaction.
        """
        if mustaches < 0:
            raise ValidationError("mustaches must not be negative", user_id=user_id)

        entry = RewardTransaction(
            user_id=user_id,
            cafe_id=cafe_id,
            session_id=session_id,
            transaction_type=TransactionType.CREDITED,
            mustaches=mustaches,
            earned_date=earned_date or cafe_now(self._settings.cafe_timezone),
        )
        self._db.add(entry)
        self._db.flush()
        logger.info(
            "Mustaches credited",
            user_id=user_id,
            cafe_id=cafe_id,
            session_id=session_id,
            mustaches=mustaches,
        )
        return entry

    def profile(self, user_id: int) -> LoyaltyProfileOutput:
        user = self._db.scalar(select(AppUser).where(AppUser.id == user_id))
        if user is None:
            raise NotFoundError("User", user_id)

        balance = self.balance(user_id)
        total_orders = self._db.scalar(
            select(func.count(Order.order_id)).where(
                Order.user_id == user_id,
                Order.payment_status == PaymentStatus.PAID,
            )
        )
        return LoyaltyProfileOutput(
            user_id=user_id,
            name=user.name,
            phone=user.phone,
            joined_date=user.created_at.date() if user.created_at else None,
            tier=tier_for(balance),
            monthly_earned=self.monthly_earned(user_id),
            balance=balance,
            total_orders=int(total_orders or 0),
        )
