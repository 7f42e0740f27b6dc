"""
Cart Domain Service.

Handles cart creation, item additions and per-item mutations of the shared
table cart. Every mutation locks the cart row and reconciles the cart total.
"""

from collections import Counter
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cafe_api.models import (
    Cart,
    CartItem,
    CategoryPopularity,
    ItemCustomization,
    MenuItem,
    UpgradeSuggestion,
)
from cafe_api.services.domain.session_service import SessionService
from cafe_shared.config.constants import (
    CART_ITEM_TRANSITIONS,
    CartInsertType,
    CartItemStatus,
    CartStatus,
    SuggestionAction,
    ensure_transition,
)
from cafe_shared.config.logging import cart_logger as logger
from cafe_shared.config.settings import Settings, settings
from cafe_shared.infrastructure.db import safe_commit
from cafe_shared.infrastructure.fanout import Deadline, FanoutError, collect, run_fanout
from cafe_shared.utils.exceptions import (
    CartItemNotFoundError,
    CartNotFoundError,
    CartTotalMismatchError,
    ConflictError,
    PersistenceError,
    ValidationError,
)
from cafe_shared.utils.identifiers import new_id
from cafe_shared.utils.schemas import (
    AddItemsOutput,
    AddItemsRequest,
    CartItemOutput,
    CartOutput,
    CartUpdateOutput,
    CustomizationRef,
)


class CartService:
    """
    Domain service for carts and cart items.

    Cart totals: with ``verify_cart_totals`` the server recomputes
    sum(price * quantity) over Active items and only uses the client amount
    as a consistency check. Without it the client amount is stored as sent.
    """

    def __init__(
        self,
        db: Session,
        config: Settings | None = None,
        session_factory: Callable[[], Session] | None = None,
    ):
        self._db = db
        self._settings = config or settings
        # Fan-out reads never share the request Session
        self._session_factory = session_factory or sessionmaker(
            bind=db.get_bind(), autoflush=False
        )

    # =========================================================================
    # Add items
    # =========================================================================

    def add_items(self, request: AddItemsRequest, user_id: int) -> AddItemsOutput:
        """
        Add items to the cart, creating the cart on first use.

        A missing ``cart_id`` mints one; a supplied one is created if unknown
        and updated otherwise.

        Raises:
            ValidationError: no items, or cafe does not match the session
            SessionNotFoundError / SessionInactiveError: session not usable
            ConflictError: cart already ordered, duplicate cart item id,
                or declared total disagrees with the items
        """
        if not request.items:
            raise ValidationError("At least one item is required", session_id=request.session_id)

        session = SessionService(self._db, self._settings).require_active(request.session_id)
        if session.cafe_id != request.cafe_id:
            raise ValidationError(
                "Cafe does not match the session",
                session_id=request.session_id,
                cafe_id=request.cafe_id,
            )

        cart_id = request.cart_id or new_id()
        cart = self._lock_cart(cart_id)
        if cart is None:
            cart = Cart(
                cart_id=cart_id,
                session_id=request.session_id,
                user_id=user_id,
                cafe_id=request.cafe_id,
                status=CartStatus.ACTIVE,
                total_amount=request.total_amount,
                discount_amount=request.discount_amount,
            )
            self._db.add(cart)
            logger.info("Cart created", cart_id=cart_id, session_id=request.session_id, user_id=user_id)
        else:
            if cart.session_id != request.session_id:
                raise CartNotFoundError(cart_id, session_id=request.session_id)
            if cart.status != CartStatus.ACTIVE:
                raise ConflictError("Cart is already ordered", cart_id=cart_id)
            cart.discount_amount = request.discount_amount

        supplied_ids = [i.cart_item_id for i in request.items if i.cart_item_id]
        if supplied_ids:
            duplicate = self._db.scalar(
                select(CartItem.cart_item_id).where(CartItem.cart_item_id.in_(supplied_ids))
            )
            if duplicate is not None or len(set(supplied_ids)) != len(supplied_ids):
                raise ConflictError(
                    "Cart item already exists", cart_id=cart_id, cart_item_id=duplicate
                )

        warnings: list[str] = []
        for item in request.items:
            self._db.add(
                CartItem(
                    cart_item_id=item.cart_item_id or new_id(),
                    cart_id=cart_id,
                    item_id=item.item_id,
                    quantity=item.quantity,
                    price=item.price,
                    status=CartItemStatus.ACTIVE,
                    customization_ids=list(item.customization_ids),
                    cross_sell_item_ids=list(item.cross_sell_item_ids),
                    special_request=item.special_request,
                    added_via=item.added_via,
                )
            )
            if item.added_via == CartInsertType.UPGRADE_CART_AI:
                warning = self._accept_upgrade_suggestion(cart_id, item.item_id)
                if warning:
                    warnings.append(warning)

        self._apply_total(cart, request.total_amount)
        safe_commit(self._db, "add_items", cart_id=cart_id, session_id=request.session_id)

        logger.info(
            "Items added to cart",
            cart_id=cart_id,
            user_id=user_id,
            count=len(request.items),
            warnings=len(warnings),
        )

        self._bump_popularity(request.cafe_id, [i.item_id for i in request.items])
        return AddItemsOutput(cart_id=cart_id, warnings=warnings)

    def _accept_upgrade_suggestion(self, cart_id: str, item_id: int) -> str | None:
        """Mark the latest pending suggestion as added. Returns a warning if none."""
        suggestion = self._db.scalar(
            select(UpgradeSuggestion)
            .where(
                UpgradeSuggestion.cart_id == cart_id,
                UpgradeSuggestion.suggested_item_id == item_id,
                UpgradeSuggestion.user_action == SuggestionAction.PENDING,
            )
            .order_by(UpgradeSuggestion.created_at.desc())
            .limit(1)
        )
        if suggestion is None:
            logger.warning(
                "No pending upgrade suggestion for item added via UpgradeCartAi",
                cart_id=cart_id,
                item_id=item_id,
            )
            return f"No pending upgrade suggestion for item {item_id}"
        suggestion.user_action = SuggestionAction.ADDED
        return None

    def _bump_popularity(self, cafe_id: int, item_ids: list[int]) -> None:
        """Increment per-category counters in a separate, best-effort transaction."""
        try:
            rows = self._db.execute(
                select(MenuItem.id, MenuItem.category).where(MenuItem.id.in_(sorted(set(item_ids))))
            ).all()
            category_of = {row.id: row.category for row in rows}
            counts = Counter(category_of[i] for i in item_ids if i in category_of)

            for category, count in counts.items():
                popularity = self._db.scalar(
                    select(CategoryPopularity)
                    .where(
                        CategoryPopularity.cafe_id == cafe_id,
                        CategoryPopularity.category == category,
                    )
                    .with_for_update()
                )
                if popularity is None:
                    self._db.add(
                        CategoryPopularity(cafe_id=cafe_id, category=category, order_count=count)
                    )
                else:
                    popularity.order_count += count
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.warning(
                "Category popularity update failed",
                cafe_id=cafe_id,
                error=str(exc),
            )

    # =========================================================================
    # Item mutations
    # =========================================================================

    def update_quantity(
        self, cart_item_id: str, quantity: int, cart_amount: float
    ) -> CartUpdateOutput:
        """Set the quantity of an item; quantity 0 cancels it."""
        if quantity < 0:
            raise ValidationError("quantity must not be negative", cart_item_id=cart_item_id)

        cart, item = self._lock_item(cart_item_id)
        if quantity == 0:
            ensure_transition("CartItem", item.status, CartItemStatus.CANCELED, CART_ITEM_TRANSITIONS)
            item.status = CartItemStatus.CANCELED
            item.quantity = 0
        else:
            item.quantity = quantity

        return self._finish_item_update(cart, item, cart_amount, "update_quantity")

    def update_customizations(
        self,
        cart_item_id: str,
        price: float,
        customization_ids: list[int],
        cart_amount: float,
    ) -> CartUpdateOutput:
        """Replace the customization list and unit price of an item."""
        cart, item = self._lock_item(cart_item_id)
        item.customization_ids = list(customization_ids)
        item.price = price
        return self._finish_item_update(cart, item, cart_amount, "update_customizations")

    def update_cross_sell_items(
        self,
        cart_item_id: str,
        price: float,
        cross_sell_item_ids: list[int],
        cart_amount: float,
    ) -> CartUpdateOutput:
        """Replace the cross-sell list and unit price of an item."""
        cart, item = self._lock_item(cart_item_id)
        item.cross_sell_item_ids = list(cross_sell_item_ids)
        item.price = price
        return self._finish_item_update(cart, item, cart_amount, "update_cross_sell_items")

    def add_special_request(self, cart_item_id: str, special_request: str) -> CartUpdateOutput:
        cart, item = self._lock_item(cart_item_id)
        item.special_request = special_request or None
        return self._finish_item_update(cart, item, None, "add_special_request")

    def _finish_item_update(
        self,
        cart: Cart,
        item: CartItem,
        cart_amount: float | None,
        operation: str,
    ) -> CartUpdateOutput:
        if cart_amount is not None:
            self._apply_total(cart, cart_amount)

        output = CartUpdateOutput(
            cart_item_id=item.cart_item_id,
            status=item.status,
            quantity=item.quantity,
            cart_total=cart.total_amount,
        )
        safe_commit(self._db, operation, cart_item_id=item.cart_item_id, cart_id=cart.cart_id)
        logger.info(
            "Cart item updated",
            operation=operation,
            cart_item_id=output.cart_item_id,
            status=output.status.value,
            quantity=output.quantity,
            cart_total=output.cart_total,
        )
        return output

    # =========================================================================
    # Locking and totals
    # =========================================================================

    def _lock_cart(self, cart_id: str) -> Cart | None:
        return self._db.scalar(
            select(Cart).where(Cart.cart_id == cart_id).with_for_update()
        )

    def _lock_item(self, cart_item_id: str) -> tuple[Cart, CartItem]:
        """
        Lock the parent cart, then the item. Only Active items are mutable.

        Raises:
            CartItemNotFoundError: unknown item
            ConflictError: item is Canceled or already Ordered
        """
        cart_id = self._db.scalar(
            select(CartItem.cart_id).where(CartItem.cart_item_id == cart_item_id)
        )
        if cart_id is None:
            raise CartItemNotFoundError(cart_item_id)

        cart = self._lock_cart(cart_id)
        item = self._db.scalar(
            select(CartItem).where(CartItem.cart_item_id == cart_item_id).with_for_update()
        )
        if cart is None or item is None:
            raise CartItemNotFoundError(cart_item_id)

        if item.status == CartItemStatus.CANCELED:
            raise ConflictError("Cart item is canceled", cart_item_id=cart_item_id)
        if item.status != CartItemStatus.ACTIVE:
            raise ConflictError("Cart item is already ordered", cart_item_id=cart_item_id)
        return cart, item

    def compute_total(self, cart_id: str) -> float:
        """sum(price * quantity) over the Active items of a cart."""
        self._db.flush()
        total = self._db.scalar(
            select(func.coalesce(func.sum(CartItem.price * CartItem.quantity), 0)).where(
                CartItem.cart_id == cart_id,
                CartItem.status == CartItemStatus.ACTIVE,
            )
        )
        return round(float(total or 0), 2)

    def _apply_total(self, cart: Cart, declared: float) -> None:
        if not self._settings.verify_cart_totals:
            cart.total_amount = declared
            return

        computed = self.compute_total(cart.cart_id)
        if abs(computed - declared) > self._settings.cart_total_tolerance:
            cart_id = cart.cart_id
            self._db.rollback()
            raise CartTotalMismatchError(cart_id, declared, computed)
        cart.total_amount = computed

    # =========================================================================
    # Read
    # =========================================================================

    def get_cart(self, cart_id: str, session_id: str, user_id: int) -> CartOutput:
        """
        Return the non-canceled items of the caller's Active cart.

        Raises:
            CartNotFoundError: unknown cart, or not owned by (session, user)
            ConflictError: cart is not Active
        """
        cart = self._db.scalar(select(Cart).where(Cart.cart_id == cart_id))
        if cart is None or cart.session_id != session_id or cart.user_id != user_id:
            raise CartNotFoundError(cart_id, session_id=session_id, user_id=user_id)
        if cart.status != CartStatus.ACTIVE:
            raise ConflictError("Cart is not active", cart_id=cart_id)

        items = self._db.scalars(
            select(CartItem)
            .where(
                CartItem.cart_id == cart_id,
                CartItem.status != CartItemStatus.CANCELED,
            )
            .order_by(CartItem.created_at)
        ).all()

        customization_ids = {cid for item in items for cid in item.customization_ids or []}
        menu_item_ids = {item.item_id for item in items}

        results = run_fanout(
            [
                ("customizations", lambda: self._load_customization_names(customization_ids)),
                ("menu_items", lambda: self._load_menu_item_names(menu_item_ids)),
            ],
            deadline=Deadline(self._settings.fanout_timeout_seconds),
            max_workers=self._settings.fanout_max_workers,
        )
        try:
            lookups = collect(results)
        except FanoutError as exc:
            raise PersistenceError("get_cart_enrichment", cart_id=cart_id, failures=exc.describe()) from exc

        customization_names: dict[int, str] = lookups["customizations"]
        item_names: dict[int, str] = lookups["menu_items"]

        return CartOutput(
            cart_id=cart.cart_id,
            session_id=cart.session_id,
            status=cart.status,
            total_amount=cart.total_amount,
            discount_amount=cart.discount_amount,
            items=[
                CartItemOutput(
                    cart_item_id=item.cart_item_id,
                    item_id=item.item_id,
                    item_name=item_names.get(item.item_id),
                    quantity=item.quantity,
                    price=item.price,
                    status=item.status,
                    special_request=item.special_request,
                    added_via=item.added_via,
                    customizations=[
                        CustomizationRef(id=cid, name=customization_names[cid])
                        for cid in item.customization_ids or []
                        if cid in customization_names
                    ],
                    cross_sell_item_ids=list(item.cross_sell_item_ids or []),
                )
                for item in items
            ],
        )

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

    def _load_menu_item_names(self, ids: set[int]) -> dict[int, str]:
        if not ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(
                select(MenuItem.id, MenuItem.name).where(MenuItem.id.in_(sorted(ids)))
            ).all()
        return {row.id: row.name for row in rows}
