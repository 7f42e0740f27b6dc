"""
Order Domain Service.

Order placement runs in three stages:

1. The Order row is inserted and committed. From here on the order is durable.
2. Ledger group, one transaction: cart -> Ordered, non-canceled items ->
   Ordered, discount row. Each step reports a TaskResult; any failure rolls
   the whole group back and raises PartialFailureError carrying the order id.
3. Reward resolution and the credited ledger entry, then a best-effort push
   to the cafe's staff devices.

There is no idempotency key: placing the same cart twice creates two orders.
"""

from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cafe_api.models import (
    AppUser,
    Cafe,
    CafeAdvertisement,
    Cart,
    CartItem,
    Discount,
    FcmToken,
    ItemCustomization,
    MenuItem,
    Order,
    TableSession,
    UpsellData,
)
from cafe_api.services.clock import cafe_local_now
from cafe_api.services.domain.loyalty_service import LoyaltyService
from cafe_api.services.domain.session_service import SessionService
from cafe_api.services.domain.upsell_service import UpsellService
from cafe_api.services.notifications import PushNotificationDispatcher, get_push_dispatcher
from cafe_shared.config.constants import (
    CART_ITEM_TRANSITIONS,
    CART_TRANSITIONS,
    ORDER_TRANSITIONS,
    AdStatus,
    CartItemStatus,
    CartStatus,
    Notifications,
    OrderStatus,
    PaymentStatus,
    Rewards,
    ensure_transition,
)
from cafe_shared.config.logging import order_logger as logger
from cafe_shared.config.settings import Settings, settings
from cafe_shared.infrastructure.db import safe_commit
from cafe_shared.infrastructure.fanout import (
    Deadline,
    DeadlineExceeded,
    FanoutError,
    collect,
    run_fanout,
    run_inline,
)
from cafe_shared.utils.clock import start_of_day
from cafe_shared.utils.exceptions import (
    CartNotFoundError,
    OrderNotFoundError,
    PartialFailureError,
    PersistenceError,
    SessionNotFoundError,
    ValidationError,
)
from cafe_shared.utils.identifiers import new_id
from cafe_shared.utils.schemas import (
    AdvertisementOutput,
    DispatchReport,
    OrderDetailsOutput,
    OrderItemOutput,
    OrderStatusOutput,
    OrderSummary,
    PlaceOrderOutput,
    PlaceOrderRequest,
    UserOrderGroup,
)


def select_reward(cart_total: float, offer: UpsellData | None) -> tuple[int, bool]:
    """
    Mustaches earned for an order and whether the upsell offer is consumed.

    An unaccepted offer whose target the cart total reached pays its bonus;
    otherwise one mustache per 50 rupees.
    """
    base = int(cart_total // Rewards.RUPEES_PER_MUSTACHE)
    if offer is None or offer.offer_accepted:
        return base, False
    if cart_total >= offer.target_amount:
        return offer.mustaches_to_give, True
    return base, False


class OrderService:
    """Domain service for order placement, cancellation and the order summary."""

    def __init__(
        self,
        db: Session,
        config: Settings | None = None,
        dispatcher: PushNotificationDispatcher | None = None,
        session_factory: Callable[[], Session] | None = None,
    ):
        self._db = db
        self._settings = config or settings
        self._dispatcher = dispatcher or get_push_dispatcher()
        self._session_factory = session_factory or sessionmaker(
            bind=db.get_bind(), autoflush=False
        )

    # =========================================================================
    # Place order
    # =========================================================================

    def place_order(self, request: PlaceOrderRequest, user_id: int) -> PlaceOrderOutput:
        """
        Place an order for a cart.

        Raises:
            ValidationError: missing ids, non-positive total, missing user,
                or a cafe other than the session's
            SessionNotFoundError / SessionInactiveError: session not usable
            CartNotFoundError: unknown cart or cart of another session
            PersistenceError: the order row itself could not be stored
            PartialFailureError: the order exists but a later write group failed
        """
        if not request.cart_id or not request.session_id:
            raise ValidationError("cart_id and session_id are required")
        if request.total_amount <= 0:
            raise ValidationError(
                "total_amount must be positive", total_amount=request.total_amount
            )
        if not user_id:
            raise ValidationError("user_id is required")

        deadline = Deadline(self._settings.order_placement_timeout_seconds)

        session = SessionService(self._db, self._settings).require_active(request.session_id)
        if session.cafe_id != request.cafe_id:
            raise ValidationError(
                "Cafe does not match the session",
                session_id=request.session_id,
                cafe_id=request.cafe_id,
            )
        table_name = session.table_name
        cart = self._db.scalar(select(Cart).where(Cart.cart_id == request.cart_id))
        if cart is None or cart.session_id != request.session_id:
            raise CartNotFoundError(request.cart_id, session_id=request.session_id)

        # Stage 1: durable order row
        order_id = new_id()
        self._db.add(
            Order(
                order_id=order_id,
                cart_id=request.cart_id,
                session_id=request.session_id,
                user_id=user_id,
                cafe_id=request.cafe_id,
                status=OrderStatus.PLACED,
                payment_status=PaymentStatus.PENDING,
                total_amount=request.total_amount,
                special_request=request.special_request,
                order_time=cafe_local_now(self._db, request.cafe_id, self._settings),
            )
        )
        safe_commit(self._db, "insert_order", cart_id=request.cart_id, user_id=user_id)
        logger.info(
            "Order inserted",
            order_id=order_id,
            cart_id=request.cart_id,
            session_id=request.session_id,
            user_id=user_id,
            total=request.total_amount,
        )

        # Stage 2: ledger group
        self._write_ledger_group(order_id, request, user_id, deadline)

        # Stage 3: rewards
        rewards = self._credit_rewards(order_id, request, user_id)

        notification, warnings = self._notify_cafe(order_id, request.cafe_id, table_name)

        logger.info(
            "Order placed",
            order_id=order_id,
            rewards=rewards,
            notified=notification.sent,
            notify_failed=notification.failed,
        )
        return PlaceOrderOutput(
            order_id=order_id,
            rewards_earned=rewards,
            notification=notification,
            warnings=warnings,
        )

    def _write_ledger_group(
        self,
        order_id: str,
        request: PlaceOrderRequest,
        user_id: int,
        deadline: Deadline,
    ) -> None:
        results = run_inline(
            [
                ("cart_status", lambda: self._close_cart(request.cart_id)),
                ("cart_items_status", lambda: self._close_cart_items(request.cart_id)),
                ("discount_ledger", lambda: self._write_discount(order_id, request, user_id)),
            ]
        )
        try:
            collect(results)
            deadline.check("ledger_commit")
            self._db.commit()
        except FanoutError as exc:
            self._db.rollback()
            raise PartialFailureError(
                exc.first_stage, order_id=order_id, failures=exc.describe()
            ) from exc
        except DeadlineExceeded as exc:
            self._db.rollback()
            raise PartialFailureError(exc.stage, order_id=order_id, timeout=exc.timeout) from exc
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PartialFailureError("ledger_commit", order_id=order_id, cause=str(exc)) from exc

    def _close_cart(self, cart_id: str) -> CartStatus:
        cart = self._db.scalar(select(Cart).where(Cart.cart_id == cart_id).with_for_update())
        if cart is None:
            raise CartNotFoundError(cart_id)
        ensure_transition("Cart", cart.status, CartStatus.ORDERED, CART_TRANSITIONS)
        cart.status = CartStatus.ORDERED
        self._db.flush()
        return cart.status

    def _close_cart_items(self, cart_id: str) -> int:
        items = self._db.scalars(
            select(CartItem)
            .where(
                CartItem.cart_id == cart_id,
                CartItem.status != CartItemStatus.CANCELED,
            )
            .with_for_update()
        ).all()
        for item in items:
            ensure_transition("CartItem", item.status, CartItemStatus.ORDERED, CART_ITEM_TRANSITIONS)
            item.status = CartItemStatus.ORDERED
        self._db.flush()
        return len(items)

    def _write_discount(self, order_id: str, request: PlaceOrderRequest, user_id: int) -> Discount:
        discount = Discount(
            order_id=order_id,
            user_id=user_id,
            cafe_id=request.cafe_id,
            discount_value=request.discount,
            total_cost=request.total_amount,
        )
        self._db.add(discount)
        self._db.flush()
        return discount

    def _credit_rewards(self, order_id: str, request: PlaceOrderRequest, user_id: int) -> int:
        try:
            cart_total = self._db.scalar(
                select(Cart.total_amount).where(Cart.cart_id == request.cart_id)
            ) or 0.0
            offer = UpsellService(self._db, self._settings).latest_offer(request.cart_id)
            rewards, accept_offer = select_reward(cart_total, offer)
            if accept_offer:
                offer.offer_accepted = True

            LoyaltyService(self._db, self._settings).credit(
                user_id=user_id,
                cafe_id=request.cafe_id,
                session_id=request.session_id,
                mustaches=rewards,
                earned_date=cafe_local_now(self._db, request.cafe_id, self._settings),
            )
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PartialFailureError(
                "reward_transaction", order_id=order_id, cause=str(exc)
            ) from exc

        logger.info(
            "Rewards resolved",
            order_id=order_id,
            cart_total=cart_total,
            rewards=rewards,
            upsell_accepted=accept_offer,
        )
        return rewards

    def _notify_cafe(
        self, order_id: str, cafe_id: int, table_name: str
    ) -> tuple[DispatchReport, list[str]]:
        """Push to staff devices. Failures end up in the result, never raised."""
        warnings: list[str] = []
        try:
            tokens = list(
                self._db.scalars(select(FcmToken.token).where(FcmToken.cafe_id == cafe_id))
            )
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.warning("Could not load device tokens", order_id=order_id, error=str(exc))
            return DispatchReport(), ["Staff notification could not be sent"]

        report = self._dispatcher.send(
            tokens,
            Notifications.ORDER_TITLE,
            Notifications.ORDER_BODY_TEMPLATE.format(table=table_name),
            data={"order_id": order_id},
        )
        if report.failed:
            logger.warning(
                "Staff notification partially failed",
                order_id=order_id,
                failed=report.failed,
            )
            warnings.append(f"Staff notification failed for {report.failed} device(s)")
        return report, warnings

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel_order(self, order_id: str, user_id: int) -> OrderStatusOutput:
        """Placed/Confirmed -> Cancelled. Only the diner who placed it may cancel."""
        order = self._db.scalar(
            select(Order).where(Order.order_id == order_id).with_for_update()
        )
        if order is None or order.user_id != user_id:
            raise OrderNotFoundError(order_id, user_id=user_id)

        ensure_transition("Order", order.status, OrderStatus.CANCELLED, ORDER_TRANSITIONS)
        order.status = OrderStatus.CANCELLED
        safe_commit(self._db, "cancel_order", order_id=order_id)

        logger.info("Order cancelled", order_id=order_id, user_id=user_id)
        return OrderStatusOutput(order_id=order_id, status=OrderStatus.CANCELLED)

    # =========================================================================
    # Order details
    # =========================================================================

    def fetch_order_details(self, session_id: str, user_id: int) -> OrderDetailsOutput:
        """
        Unsettled, non-cancelled orders of a session grouped per diner.

        Cafes not in complete-POS mode only show the caller's orders placed
        today (cafe time).
        """
        session = self._db.scalar(
            select(TableSession).where(TableSession.session_id == session_id)
        )
        if session is None:
            raise SessionNotFoundError(session_id)

        cafe_id = session.cafe_id
        complete_pos = bool(
            self._db.scalar(select(Cafe.complete_pos).where(Cafe.id == cafe_id))
        )
        now = cafe_local_now(self._db, cafe_id, self._settings)

        query = select(Order).where(
            Order.session_id == session_id,
            Order.payment_status.in_(PaymentStatus.unsettled()),
            Order.status != OrderStatus.CANCELLED,
        )
        if not complete_pos:
            query = query.where(
                Order.user_id == user_id,
                Order.order_time >= start_of_day(now),
            )
        orders = self._db.scalars(query.order_by(Order.order_time)).all()

        deadline = Deadline(self._settings.fanout_timeout_seconds)
        cart_ids = {o.cart_id for o in orders}
        order_ids = {o.order_id for o in orders}
        user_ids = {o.user_id for o in orders}

        first = self._gather(
            [
                ("items", lambda: self._load_ordered_items(cart_ids)),
                ("discounts", lambda: self._load_discounts(order_ids)),
                ("users", lambda: self._load_user_names(user_ids)),
                ("advertisement", lambda: self._load_active_ad(cafe_id, now)),
            ],
            deadline,
            session_id,
        )
        items_by_cart: dict[str, list[dict]] = first["items"]
        menu_ids = {
            ref
            for rows in items_by_cart.values()
            for row in rows
            for ref in [row["item_id"], *row["cross_sell_item_ids"]]
        }
        customization_ids = {
            cid for rows in items_by_cart.values() for row in rows for cid in row["customization_ids"]
        }
        second = self._gather(
            [
                ("menu_names", lambda: self._load_menu_names(menu_ids)),
                ("customization_names", lambda: self._load_customization_names(customization_ids)),
            ],
            deadline,
            session_id,
        )
        menu_names: dict[int, str] = second["menu_names"]
        customization_names: dict[int, str] = second["customization_names"]
        discounts: dict[str, float] = first["discounts"]
        user_names: dict[int, str | None] = first["users"]

        groups: dict[int, UserOrderGroup] = {}
        for order in orders:
            summary = OrderSummary(
                order_id=order.order_id,
                status=order.status,
                payment_status=order.payment_status,
                order_time=order.order_time,
                total_amount=order.total_amount,
                discount=discounts.get(order.order_id, 0.0),
                special_request=order.special_request,
                items=[
                    OrderItemOutput(
                        cart_item_id=row["cart_item_id"],
                        item_id=row["item_id"],
                        name=menu_names.get(row["item_id"]),
                        quantity=row["quantity"],
                        price=row["price"],
                        customizations=[
                            customization_names[c]
                            for c in row["customization_ids"]
                            if c in customization_names
                        ],
                        cross_sell_items=[
                            menu_names[c] for c in row["cross_sell_item_ids"] if c in menu_names
                        ],
                        special_request=row["special_request"],
                    )
                    for row in items_by_cart.get(order.cart_id, [])
                ],
            )
            group = groups.get(order.user_id)
            if group is None:
                group = UserOrderGroup(
                    user_id=order.user_id,
                    user_name=user_names.get(order.user_id),
                    total_amount=0.0,
                    total_discount=0.0,
                    orders=[],
                )
                groups[order.user_id] = group
            group.orders.append(summary)
            group.total_amount += summary.total_amount
            group.total_discount += summary.discount

        ad = first["advertisement"]
        return OrderDetailsOutput(
            session_id=session_id,
            groups=list(groups.values()),
            timestamp=max((o.order_time for o in orders), default=None),
            advertisement=AdvertisementOutput.model_validate(ad) if ad else None,
        )

    def _gather(self, tasks: list, deadline: Deadline, session_id: str) -> dict:
        results = run_fanout(tasks, deadline=deadline, max_workers=self._settings.fanout_max_workers)
        try:
            return collect(results)
        except FanoutError as exc:
            raise PersistenceError(
                "fetch_order_details", session_id=session_id, failures=exc.describe()
            ) from exc

    # Each loader runs in its own Session and returns plain values

    def _load_ordered_items(self, cart_ids: set[str]) -> dict[str, list[dict]]:
        if not cart_ids:
            return {}
        with self._session_factory() as db:
            items = db.scalars(
                select(CartItem)
                .where(
                    CartItem.cart_id.in_(sorted(cart_ids)),
                    CartItem.status == CartItemStatus.ORDERED,
                )
                .order_by(CartItem.created_at)
            ).all()
            by_cart: dict[str, list[dict]] = {}
            for item in items:
                by_cart.setdefault(item.cart_id, []).append(
                    {
                        "cart_item_id": item.cart_item_id,
                        "item_id": item.item_id,
                        "quantity": item.quantity,
                        "price": item.price,
                        "customization_ids": list(item.customization_ids or []),
                        "cross_sell_item_ids": list(item.cross_sell_item_ids or []),
                        "special_request": item.special_request,
                    }
                )
        return by_cart

    def _load_discounts(self, order_ids: set[str]) -> dict[str, float]:
        if not order_ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(
                select(Discount.order_id, Discount.discount_value).where(
                    Discount.order_id.in_(sorted(order_ids))
                )
            ).all()
        totals: dict[str, float] = {}
        for row in rows:
            totals[row.order_id] = totals.get(row.order_id, 0.0) + row.discount_value
        return totals

    def _load_user_names(self, user_ids: set[int]) -> dict[int, str | None]:
        if not user_ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(
                select(AppUser.id, AppUser.name).where(AppUser.id.in_(sorted(user_ids)))
            ).all()
        return {row.id: row.name for row in rows}

    def _load_active_ad(self, cafe_id: int, now) -> dict | None:
        with self._session_factory() as db:
            ad = db.scalar(
                select(CafeAdvertisement)
                .where(
                    CafeAdvertisement.cafe_id == cafe_id,
                    CafeAdvertisement.status == AdStatus.ACTIVE,
                    CafeAdvertisement.start_time <= now,
                    CafeAdvertisement.end_time >= now,
                )
                .order_by(CafeAdvertisement.start_time.desc())
                .limit(1)
            )
            if ad is None:
                return None
            return {"id": ad.id, "title": ad.title, "image_url": ad.image_url}

    def _load_menu_names(self, ids: set[int]) -> dict[int, str]:
        if not ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(select(MenuItem.id, MenuItem.name).where(MenuItem.id.in_(sorted(ids)))).all()
        return {row.id: row.name for row in rows}

    def _load_customization_names(self, ids: set[int]) -> dict[int, str]:
        if not ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(
                select(ItemCustomization.id, ItemCustomization.option_name).where(
                    ItemCustomization.id.in_(sorted(ids))
                )
            ).all()
        return {row.id: row.option_name for row in rows}
