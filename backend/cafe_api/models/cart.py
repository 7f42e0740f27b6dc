"""
Cart models: Cart, CartItem, UpgradeSuggestion.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import JSON, BigInteger, Float, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_shared.config.constants import (
    CartInsertType,
    CartItemStatus,
    CartStatus,
    SuggestionAction,
)

from .base import Base, TimestampMixin, enum_column


class Cart(TimestampMixin, Base):
    """
    Shared cart of a session, created on the first item addition.
    Never deleted; moves to Ordered when an order is placed.
    """

    __tablename__ = "cart"

    cart_id: Mapped[str] = mapped_column(Text, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        Text, ForeignKey("session.session_id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cafe_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("cafe.id"), nullable=False)
    status: Mapped[CartStatus] = enum_column(
        CartStatus, default=CartStatus.ACTIVE, nullable=False
    )
    total_amount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    discount_amount: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    items: Mapped[list["CartItem"]] = relationship(back_populates="cart")


class CartItem(TimestampMixin, Base):
    """
    One line of a cart.
    ``price`` is the unit price including customizations and cross-sells.
    Canceled is terminal; quantity 0 cancels.
    """

    __tablename__ = "cart_item"

    cart_item_id: Mapped[str] = mapped_column(Text, primary_key=True)
    cart_id: Mapped[str] = mapped_column(
        Text, ForeignKey("cart.cart_id"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[CartItemStatus] = enum_column(
        CartItemStatus, default=CartItemStatus.ACTIVE, nullable=False
    )
    # Full-replace JSON arrays of ids
    customization_ids: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    cross_sell_item_ids: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    special_request: Mapped[Optional[str]] = mapped_column(Text)
    added_via: Mapped[CartInsertType] = enum_column(
        CartInsertType, default=CartInsertType.DIRECT, nullable=False
    )

    __table_args__ = (Index("ix_cart_item_cart_status", "cart_id", "status"),)

    cart: Mapped["Cart"] = relationship(back_populates="items")


class UpgradeSuggestion(TimestampMixin, Base):
    """
    Cart-upgrade suggestion produced by the recommendation service.
    Marked ``added`` when the diner adds the suggested item.
    """

    __tablename__ = "upgrade_suggestion"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    cart_id: Mapped[str] = mapped_column(
        Text, ForeignKey("cart.cart_id"), nullable=False, index=True
    )
    suggested_item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_action: Mapped[SuggestionAction] = enum_column(
        SuggestionAction, default=SuggestionAction.PENDING, nullable=False
    )
