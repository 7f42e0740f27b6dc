"""
Tests for OrderService: placement stages, rewards, cancellation and the
per-session order summary.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from cafe_api.models import (
    Cafe,
    Cart,
    CartItem,
    Discount,
    FcmToken,
    Order,
    RewardTransaction,
    UpsellData,
)
from cafe_api.services.domain import (
    CartService,
    LoyaltyService,
    OrderService,
    SessionService,
    UpsellService,
    select_reward,
)
from cafe_shared.config.constants import CartItemStatus, CartStatus, OrderStatus, PaymentStatus
from cafe_shared.config.settings import Settings
from cafe_shared.utils.exceptions import (
    CartNotFoundError,
    ConflictError,
    OrderNotFoundError,
    PartialFailureError,
    SessionInactiveError,
    ValidationError,
)
from cafe_shared.utils.schemas import AddItemsRequest, DispatchReport, PlaceOrderRequest
from tests.conftest import (
    CAFE_ID,
    CROISSANT,
    GUEST_ID,
    HOST_ID,
    LATTE,
    OAT_MILK,
    FakePushDispatcher,
    make_item,
)


def _request(session_id, cart_id, total=390, discount=0.0, **kwargs):
    return PlaceOrderRequest(
        cart_id=cart_id,
        session_id=session_id,
        cafe_id=CAFE_ID,
        total_amount=total,
        discount=discount,
        **kwargs,
    )


def _broken(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("database is locked"))


class TestSelectReward:
    """Tests for reward selection."""

    def test_base_rate_without_offer(self):
        assert select_reward(390, None) == (7, False)

    def test_small_total_earns_nothing(self):
        assert select_reward(40, None) == (0, False)

    def test_reached_offer_pays_bonus(self):
        offer = UpsellData(target_amount=60, mustaches_to_give=30, offer_accepted=False)

        assert select_reward(400, offer) == (30, True)

    def test_offer_not_reached_with_small_total(self):
        offer = UpsellData(target_amount=60, mustaches_to_give=30, offer_accepted=False)

        assert select_reward(40, offer) == (0, False)

    def test_unreached_offer_pays_base(self):
        offer = UpsellData(target_amount=600, mustaches_to_give=30, offer_accepted=False)

        assert select_reward(400, offer) == (8, False)

    def test_accepted_offer_is_not_paid_twice(self):
        offer = UpsellData(target_amount=60, mustaches_to_give=30, offer_accepted=True)

        assert select_reward(400, offer) == (8, False)


class TestPlaceOrder:
    """Tests for the happy path and validation."""

    def test_place_order_closes_cart(self, db_session, active_session, filled_cart, test_settings):
        dispatcher = FakePushDispatcher()
        output = OrderService(db_session, test_settings, dispatcher=dispatcher).place_order(
            _request(active_session.session_id, filled_cart, discount=15, special_request="no sugar"),
            HOST_ID,
        )

        db_session.expire_all()
        order = db_session.get(Order, output.order_id)
        assert order.status == OrderStatus.PLACED
        assert order.payment_status == PaymentStatus.PENDING
        assert order.special_request == "no sugar"
        assert order.order_time.microsecond == 0

        assert db_session.get(Cart, filled_cart).status == CartStatus.ORDERED
        items = db_session.scalars(select(CartItem).where(CartItem.cart_id == filled_cart)).all()
        assert {i.status for i in items} == {CartItemStatus.ORDERED}

        discount = db_session.scalar(select(Discount).where(Discount.order_id == output.order_id))
        assert discount.discount_value == 15
        assert discount.total_cost == 390

        assert output.rewards_earned == 7
        assert LoyaltyService(db_session, test_settings).balance(HOST_ID) == 7
        assert output.warnings == []

    def test_canceled_items_stay_canceled(self, db_session, active_session, filled_cart, test_settings):
        """Only non-canceled items move to Ordered."""
        croissant = db_session.scalar(
            select(CartItem).where(CartItem.cart_id == filled_cart, CartItem.item_id == CROISSANT)
        )
        CartService(db_session, test_settings).update_quantity(croissant.cart_item_id, 0, cart_amount=300)

        OrderService(db_session, test_settings, dispatcher=FakePushDispatcher()).place_order(
            _request(active_session.session_id, filled_cart, total=300), HOST_ID
        )

        db_session.expire_all()
        assert db_session.get(CartItem, croissant.cart_item_id).status == CartItemStatus.CANCELED

    def test_staff_notified(self, db_session, active_session, filled_cart, test_settings):
        dispatcher = FakePushDispatcher()

        output = OrderService(db_session, test_settings, dispatcher=dispatcher).place_order(
            _request(active_session.session_id, filled_cart), HOST_ID
        )

        assert len(dispatcher.calls) == 1
        call = dispatcher.calls[0]
        assert call["tokens"] == ["ExponentPushToken[staff-device-1]"]
        assert call["body"] == "New order received for Table No: T1"
        assert call["data"] == {"order_id": output.order_id}

    def test_notification_failure_is_a_warning(self, db_session, active_session, filled_cart, test_settings):
        """Failed pushes never fail the order."""
        dispatcher = FakePushDispatcher(DispatchReport(sent=0, failed=1))

        output = OrderService(db_session, test_settings, dispatcher=dispatcher).place_order(
            _request(active_session.session_id, filled_cart), HOST_ID
        )

        assert output.notification.failed == 1
        assert len(output.warnings) == 1
        assert db_session.get(Order, output.order_id) is not None

    def test_upsell_offer_reached(self, db_session, active_session, filled_cart, test_settings):
        """Reaching the latest offer's target pays its bonus and consumes it."""
        offer = UpsellService(db_session, test_settings).compute_upsell(
            filled_cart, CAFE_ID, current_total=340
        )

        output = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher()).place_order(
            _request(active_session.session_id, filled_cart), HOST_ID
        )

        assert output.rewards_earned == 30
        db_session.expire_all()
        assert db_session.get(UpsellData, offer.upsell_id).offer_accepted is True

    def test_repeated_placement_creates_two_orders(
        self, db_session, active_session, filled_cart, test_settings
    ):
        """There is no idempotency key: the same cart placed twice gives two orders."""
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())

        first = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)
        second = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)

        assert first.order_id != second.order_id
        orders = db_session.scalars(select(Order).where(Order.cart_id == filled_cart)).all()
        assert len(orders) == 2

    @pytest.mark.parametrize("total", [0, -10])
    def test_non_positive_total_rejected(self, db_session, active_session, filled_cart, test_settings, total):
        with pytest.raises(ValidationError):
            OrderService(db_session, test_settings, dispatcher=FakePushDispatcher()).place_order(
                _request(active_session.session_id, filled_cart, total=total), HOST_ID
            )

    def test_missing_ids_rejected(self, db_session, active_session, test_settings):
        with pytest.raises(ValidationError):
            OrderService(db_session, test_settings, dispatcher=FakePushDispatcher()).place_order(
                _request(active_session.session_id, ""), HOST_ID
            )

    def test_inactive_session_rejected(self, db_session, active_session, filled_cart, test_settings):
        SessionService(db_session, test_settings).invalidate(active_session.session_id)

        with pytest.raises(SessionInactiveError):
            OrderService(db_session, test_settings, dispatcher=FakePushDispatcher()).place_order(
                _request(active_session.session_id, filled_cart), HOST_ID
            )

        assert db_session.scalars(select(Order)).all() == []

    def test_cafe_of_another_session_rejected(
        self, db_session, active_session, filled_cart, test_settings
    ):
        """Nothing is written or pushed for a cafe the session does not belong to."""
        db_session.add(Cafe(id=2, name="Other Cafe", complete_pos=False, timezone="Asia/Kolkata"))
        db_session.flush()
        db_session.add(FcmToken(id=2, cafe_id=2, token="ExponentPushToken[other-cafe]"))
        db_session.commit()
        dispatcher = FakePushDispatcher()
        request = PlaceOrderRequest(
            cart_id=filled_cart,
            session_id=active_session.session_id,
            cafe_id=2,
            total_amount=390,
        )

        with pytest.raises(ValidationError):
            OrderService(db_session, test_settings, dispatcher=dispatcher).place_order(request, HOST_ID)

        assert db_session.scalars(select(Order)).all() == []
        assert db_session.scalars(select(RewardTransaction)).all() == []
        assert dispatcher.calls == []

    def test_unknown_cart(self, db_session, active_session, test_settings):
        with pytest.raises(CartNotFoundError):
            OrderService(db_session, test_settings, dispatcher=FakePushDispatcher()).place_order(
                _request(active_session.session_id, "missing"), HOST_ID
            )


class TestPartialFailure:
    """Tests for failures after the order row is stored."""

    def test_ledger_failure_keeps_order(
        self, db_session, active_session, filled_cart, test_settings, monkeypatch
    ):
        """A failed discount write rolls back the ledger group; the order stays."""
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        monkeypatch.setattr(service, "_write_discount", _broken)

        with pytest.raises(PartialFailureError) as exc_info:
            service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)

        error = exc_info.value
        assert error.stage == "discount_ledger"
        assert error.status_code == 500
        assert error.headers == {"X-Order-Id": error.order_id}
        assert "discount_ledger" in error.failures

        db_session.expire_all()
        assert db_session.get(Order, error.order_id) is not None
        assert db_session.get(Cart, filled_cart).status == CartStatus.ACTIVE
        items = db_session.scalars(select(CartItem).where(CartItem.cart_id == filled_cart)).all()
        assert {i.status for i in items} == {CartItemStatus.ACTIVE}
        assert db_session.scalars(select(Discount)).all() == []

    def test_cart_status_failure_reports_first_stage(
        self, db_session, active_session, filled_cart, test_settings, monkeypatch
    ):
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        monkeypatch.setattr(service, "_close_cart", _broken)

        with pytest.raises(PartialFailureError) as exc_info:
            service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)

        assert exc_info.value.stage == "cart_status"

    def test_reward_failure_keeps_ledger(
        self, db_session, active_session, filled_cart, test_settings, monkeypatch
    ):
        """A failed reward credit leaves the committed ledger group in place."""
        monkeypatch.setattr(LoyaltyService, "credit", _broken)
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())

        with pytest.raises(PartialFailureError) as exc_info:
            service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)

        assert exc_info.value.stage == "reward_transaction"
        db_session.expire_all()
        assert db_session.get(Cart, filled_cart).status == CartStatus.ORDERED
        assert db_session.scalars(select(RewardTransaction)).all() == []

    def test_deadline_expired_before_ledger_commit(self, db_session, active_session, filled_cart):
        config = Settings(
            order_placement_timeout_seconds=0,
            fanout_max_workers=1,
            push_enabled=False,
        )

        with pytest.raises(PartialFailureError) as exc_info:
            OrderService(db_session, config, dispatcher=FakePushDispatcher()).place_order(
                _request(active_session.session_id, filled_cart), HOST_ID
            )

        assert exc_info.value.stage == "ledger_commit"
        db_session.expire_all()
        assert db_session.get(Cart, filled_cart).status == CartStatus.ACTIVE


class TestCancelOrder:
    """Tests for order cancellation."""

    def test_cancel_placed_order(self, db_session, active_session, filled_cart, test_settings):
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        placed = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)

        output = service.cancel_order(placed.order_id, HOST_ID)

        assert output.status == OrderStatus.CANCELLED

    def test_cancel_twice_conflicts(self, db_session, active_session, filled_cart, test_settings):
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        placed = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)
        service.cancel_order(placed.order_id, HOST_ID)

        with pytest.raises(ConflictError):
            service.cancel_order(placed.order_id, HOST_ID)

    def test_cancel_order_of_other_diner(self, db_session, active_session, filled_cart, test_settings):
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        placed = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)

        with pytest.raises(OrderNotFoundError):
            service.cancel_order(placed.order_id, GUEST_ID)


class TestOrderDetails:
    """Tests for the per-session order summary."""

    def _guest_order(self, db_session, session_id, config):
        SessionService(db_session, config).check_in("T1", CAFE_ID, GUEST_ID)
        cart = CartService(db_session, config).add_items(
            AddItemsRequest(
                session_id=session_id,
                cafe_id=CAFE_ID,
                items=[make_item(CROISSANT, 2, 90)],
                total_amount=180,
            ),
            GUEST_ID,
        )
        return OrderService(db_session, config, dispatcher=FakePushDispatcher()).place_order(
            _request(session_id, cart.cart_id, total=180), GUEST_ID
        )

    def test_details_show_callers_orders(self, db_session, active_session, filled_cart, test_settings):
        """Outside complete-POS mode only the caller's orders are listed."""
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        latte = db_session.scalar(
            select(CartItem).where(CartItem.cart_id == filled_cart, CartItem.item_id == LATTE)
        )
        CartService(db_session, test_settings).update_customizations(
            latte.cart_item_id, 180, [OAT_MILK], cart_amount=450
        )
        placed = service.place_order(
            _request(active_session.session_id, filled_cart, total=450, discount=10), HOST_ID
        )
        self._guest_order(db_session, active_session.session_id, test_settings)

        details = service.fetch_order_details(active_session.session_id, HOST_ID)

        assert [g.user_id for g in details.groups] == [HOST_ID]
        group = details.groups[0]
        assert group.user_name == "Asha"
        assert group.total_amount == 450
        assert group.total_discount == 10
        summary = group.orders[0]
        assert summary.order_id == placed.order_id
        names = {item.name for item in summary.items}
        assert names == {"Latte", "Croissant"}
        latte_out = next(item for item in summary.items if item.item_id == LATTE)
        assert latte_out.customizations == ["Oat milk"]
        assert details.timestamp == summary.order_time
        assert details.advertisement is None

    def test_complete_pos_groups_every_diner(
        self, db_session, active_session, filled_cart, test_settings
    ):
        """Complete-POS cafes list every diner's orders of the session."""
        cafe = db_session.get(Cafe, CAFE_ID)
        cafe.complete_pos = True
        db_session.commit()
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)
        self._guest_order(db_session, active_session.session_id, test_settings)

        details = service.fetch_order_details(active_session.session_id, HOST_ID)

        assert {g.user_id for g in details.groups} == {HOST_ID, GUEST_ID}

    def test_cancelled_and_paid_orders_hidden(
        self, db_session, active_session, filled_cart, test_settings
    ):
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        first = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)
        second = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)
        service.cancel_order(first.order_id, HOST_ID)
        db_session.get(Order, second.order_id).payment_status = PaymentStatus.PAID
        db_session.commit()

        details = service.fetch_order_details(active_session.session_id, HOST_ID)

        assert details.groups == []
        assert details.timestamp is None

    def test_orders_from_earlier_days_hidden(
        self, db_session, active_session, filled_cart, test_settings
    ):
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        placed = service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)
        order = db_session.get(Order, placed.order_id)
        order.order_time = order.order_time - timedelta(days=1)
        db_session.commit()

        details = service.fetch_order_details(active_session.session_id, HOST_ID)

        assert details.groups == []

    def test_active_advertisement_attached(
        self, db_session, active_session, filled_cart, seed_advertisement, test_settings
    ):
        service = OrderService(db_session, test_settings, dispatcher=FakePushDispatcher())
        service.place_order(_request(active_session.session_id, filled_cart), HOST_ID)

        details = service.fetch_order_details(active_session.session_id, HOST_ID)

        assert details.advertisement is not None
        assert details.advertisement.title == "Happy hour"
