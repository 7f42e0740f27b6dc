"""
Tests for the mustache ledger, tiers and the loyalty profile.
"""

from datetime import datetime

import pytest

from cafe_api.models import Order, RewardTransaction
from cafe_api.services.domain import LoyaltyService, tier_for
from cafe_shared.config.constants import (
    LoyaltyTier,
    OrderStatus,
    PaymentStatus,
    TransactionType,
)
from cafe_shared.utils.clock import cafe_now
from cafe_shared.utils.exceptions import NotFoundError, ValidationError
from tests.conftest import CAFE_ID, GUEST_ID, HOST_ID


class TestTierFor:
    """Tests for tier boundaries."""

    def test_below_first_threshold(self):
        tier = tier_for(99)

        assert tier.current_level == LoyaltyTier.DRIPSTARTER
        assert tier.next_level == LoyaltyTier.BREW_BUDDY
        assert tier.due_for_next_level == 1

    def test_on_threshold(self):
        tier = tier_for(100)

        assert tier.current_level == LoyaltyTier.BREW_BUDDY
        assert tier.next_level == LoyaltyTier.BEAN_BOSS
        assert tier.due_for_next_level == 200

    def test_top_tier(self):
        tier = tier_for(700)

        assert tier.current_level == LoyaltyTier.CAFFEINE_ROYALTY
        assert tier.next_level == LoyaltyTier.NO_MORE_LEVELS
        assert tier.due_for_next_level == 0

    def test_zero_balance(self):
        tier = tier_for(0)

        assert tier.current_level == LoyaltyTier.DRIPSTARTER
        assert tier.due_for_next_level == 100


class TestLoyaltyService:
    """Tests for credits, balances and the profile."""

    def test_balance_sums_credited_entries(self, db_session, seed_cafe, test_settings):
        service = LoyaltyService(db_session, test_settings)
        service.credit(HOST_ID, CAFE_ID, "s-1", 30)
        service.credit(HOST_ID, CAFE_ID, "s-2", 20)
        db_session.add(
            RewardTransaction(
                user_id=HOST_ID,
                cafe_id=CAFE_ID,
                session_id="s-3",
                transaction_type=TransactionType.DEBITED,
                mustaches=15,
                earned_date=cafe_now("Asia/Kolkata"),
            )
        )
        db_session.commit()

        assert service.balance(HOST_ID) == 50
        assert service.balance(GUEST_ID) == 0

    def test_credit_rejects_negative(self, db_session, seed_cafe, test_settings):
        with pytest.raises(ValidationError):
            LoyaltyService(db_session, test_settings).credit(HOST_ID, CAFE_ID, "s-1", -5)

    def test_monthly_earned_excludes_earlier_months(self, db_session, seed_cafe, test_settings):
        """Only entries since the first of the current month count."""
        service = LoyaltyService(db_session, test_settings)
        now = datetime(2026, 3, 15, 12, 0, 0)
        service.credit(HOST_ID, CAFE_ID, "s-1", 40, earned_date=datetime(2026, 3, 1, 0, 0, 0))
        service.credit(HOST_ID, CAFE_ID, "s-2", 25, earned_date=datetime(2026, 2, 28, 23, 59, 59))
        db_session.commit()

        assert service.monthly_earned(HOST_ID, now=now) == 40
        assert service.balance(HOST_ID) == 65

    def test_profile(self, db_session, seed_cafe, test_settings):
        service = LoyaltyService(db_session, test_settings)
        service.credit(HOST_ID, CAFE_ID, "s-1", 120)
        db_session.add_all(
            [
                Order(
                    order_id="o-paid",
                    cart_id="c-1",
                    session_id="s-1",
                    user_id=HOST_ID,
                    cafe_id=CAFE_ID,
                    status=OrderStatus.PLACED,
                    payment_status=PaymentStatus.PAID,
                    total_amount=300,
                    order_time=cafe_now("Asia/Kolkata"),
                ),
                Order(
                    order_id="o-pending",
                    cart_id="c-2",
                    session_id="s-1",
                    user_id=HOST_ID,
                    cafe_id=CAFE_ID,
                    status=OrderStatus.PLACED,
                    payment_status=PaymentStatus.PENDING,
                    total_amount=150,
                    order_time=cafe_now("Asia/Kolkata"),
                ),
            ]
        )
        db_session.commit()

        profile = service.profile(HOST_ID)

        assert profile.name == "Asha"
        assert profile.balance == 120
        assert profile.monthly_earned == 120
        assert profile.total_orders == 1
        assert profile.tier.current_level == LoyaltyTier.BREW_BUDDY
        assert profile.joined_date is not None

    def test_profile_unknown_user(self, db_session, seed_cafe, test_settings):
        with pytest.raises(NotFoundError):
            LoyaltyService(db_session, test_settings).profile(999)
