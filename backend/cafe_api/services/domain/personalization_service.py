"""
Personalization Domain Service (read-mostly).

Repeat-order detection, the most recent order and recent favourites of a diner
at a cafe.
"""

from collections import Counter
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe_api.models import CartItem, ItemFavorite, MenuItem, Order
from cafe_api.models.base import utc_now
from cafe_shared.config.constants import CartItemStatus, Limits, OrderStatus
from cafe_shared.config.logging import get_logger
from cafe_shared.config.settings import Settings, settings
from cafe_shared.infrastructure.db import safe_commit
from cafe_shared.utils.exceptions import NotFoundError
from cafe_shared.utils.schemas import FavouriteOutput, MenuItemSummary, PersonalisedOutput

logger = get_logger(__name__)


def find_repeat_signature(
    rows: Iterable[tuple[datetime, int, str]],
) -> tuple[int, ...] | None:
    """
    Most recently repeated item set.

    ``rows`` are (order_time, item_id, order_id). Each order's item ids,
    sorted, form its signature; among signatures seen in more than one order
    the one with the latest order time wins, ties going to the smallest
    signature. Returns None when nothing repeats.
    """
    items_by_order: dict[str, list[int]] = {}
    time_by_order: dict[str, datetime] = {}
    for order_time, item_id, order_id in rows:
        items_by_order.setdefault(order_id, []).append(item_id)
        seen = time_by_order.get(order_id)
        if seen is None or order_time > seen:
            time_by_order[order_id] = order_time

    counts: Counter[tuple[int, ...]] = Counter()
    latest: dict[tuple[int, ...], datetime] = {}
    for order_id, items in items_by_order.items():
        signature = tuple(sorted(items))
        counts[signature] += 1
        order_time = time_by_order[order_id]
        if signature not in latest or order_time > latest[signature]:
            latest[signature] = order_time

    repeated = [signature for signature, count in counts.items() if count > 1]
    if not repeated:
        return None
    newest = max(latest[s] for s in repeated)
    return min(s for s in repeated if latest[s] == newest)


class PersonalizationService:
    """Domain service for personalised suggestions and favourites."""

    def __init__(self, db: Session, config: Settings | None = None):
        self._db = db
        self._settings = config or settings

    def _summaries(self, item_ids: list[int]) -> list[MenuItemSummary]:
        """Menu item summaries in the order given, duplicates dropped."""
        ordered = list(dict.fromkeys(item_ids))
        if not ordered:
            return []
        items = self._db.scalars(select(MenuItem).where(MenuItem.id.in_(ordered))).all()
        by_id = {item.id: item for item in items}
        return [MenuItemSummary.model_validate(by_id[i]) for i in ordered if i in by_id]

    def repeat_order_signature(self, user_id: int, cafe_id: int) -> list[MenuItemSummary]:
        rows = self._db.execute(
            select(Order.order_time, CartItem.item_id, Order.order_id)
            .join(CartItem, CartItem.cart_id == Order.cart_id)
            .where(
                Order.user_id == user_id,
                Order.cafe_id == cafe_id,
                Order.status == OrderStatus.PLACED,
                CartItem.status == CartItemStatus.ORDERED,
            )
        ).all()
        signature = find_repeat_signature((r.order_time, r.item_id, r.order_id) for r in rows)
        if signature is None:
            return []
        return self._summaries(list(signature))

    def recent_order(self, user_id: int, cafe_id: int) -> list[MenuItemSummary]:
        """Items of the latest Placed order."""
        cart_id = self._db.scalar(
            select(Order.cart_id)
            .where(
                Order.user_id == user_id,
                Order.cafe_id == cafe_id,
                Order.status == OrderStatus.PLACED,
            )
            .order_by(Order.order_time.desc(), Order.created_at.desc())
            .limit(1)
        )
        if cart_id is None:
            return []
        item_ids = self._db.scalars(
            select(CartItem.item_id)
            .where(
                CartItem.cart_id == cart_id,
                CartItem.status == CartItemStatus.ORDERED,
            )
            .order_by(CartItem.created_at)
        ).all()
        return self._summaries(list(item_ids))

    def favourites(
        self, user_id: int, cafe_id: int, limit: int = Limits.FAVOURITES_LIMIT
    ) -> list[MenuItemSummary]:
        """Most recently favorited distinct items."""
        item_ids = self._db.scalars(
            select(ItemFavorite.item_id)
            .where(ItemFavorite.user_id == user_id, ItemFavorite.cafe_id == cafe_id)
            .order_by(ItemFavorite.created_at.desc(), ItemFavorite.id.desc())
        ).all()
        distinct = list(dict.fromkeys(item_ids))[:limit]
        return self._summaries(distinct)

    def personalised_data(self, user_id: int, cafe_id: int) -> PersonalisedOutput:
        return PersonalisedOutput(
            repeat_order=self.repeat_order_signature(user_id, cafe_id),
            recent_order=self.recent_order(user_id, cafe_id),
            favourites=self.favourites(user_id, cafe_id),
        )

    def add_favourite(self, user_id: int, cafe_id: int, item_id: int) -> FavouriteOutput:
        """Favourite an item; re-favouriting moves it to the front."""
        exists = self._db.scalar(
            select(MenuItem.id).where(MenuItem.id == item_id, MenuItem.cafe_id == cafe_id)
        )
        if exists is None:
            raise NotFoundError("Menu item", item_id, cafe_id=cafe_id)

        favourite = self._db.scalar(
            select(ItemFavorite).where(
                ItemFavorite.user_id == user_id,
                ItemFavorite.cafe_id == cafe_id,
                ItemFavorite.item_id == item_id,
            )
        )
        created = favourite is None
        if created:
            self._db.add(ItemFavorite(user_id=user_id, cafe_id=cafe_id, item_id=item_id))
        else:
            favourite.created_at = utc_now()
        safe_commit(self._db, "add_favourite", user_id=user_id, item_id=item_id)

        logger.info("Favourite saved", user_id=user_id, cafe_id=cafe_id, item_id=item_id, created=created)
        return FavouriteOutput(item_id=item_id, cafe_id=cafe_id, created=created)
