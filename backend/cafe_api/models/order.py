"""
Order models: Order, Discount, UpsellData.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Float, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from cafe_shared.config.constants import OrderStatus, PaymentStatus

from .base import Base, BigIntPK, TimestampMixin, enum_column


class Order(TimestampMixin, Base):
    """
    A placed order for a cart.
    ``order_time`` is cafe-local time truncated to the second.
    There is no idempotency key: each placement call creates a new row.
    """

    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(Text, primary_key=True)
    cart_id: Mapped[str] = mapped_column(
        Text, ForeignKey("cart.cart_id"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(
        Text, ForeignKey("session.session_id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    cafe_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("cafe.id"), nullable=False)
    status: Mapped[OrderStatus] = enum_column(
        OrderStatus, default=OrderStatus.PLACED, nullable=False
    )
    payment_status: Mapped[PaymentStatus] = enum_column(
        PaymentStatus, default=PaymentStatus.PENDING, nullable=False
    )
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    special_request: Mapped[Optional[str]] = mapped_column(Text)
    order_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_orders_user_cafe", "user_id", "cafe_id"),)


class Discount(Base):
    """Per-order discount ledger row."""

    __tablename__ = "discount"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[str] = mapped_column(
        Text, ForeignKey("orders.order_id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cafe_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_value: Mapped[float] = mapped_column(Float, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False)


class UpsellData(TimestampMixin, Base):
    """
    "Spend a little more" offer for a cart.
    The most recently created row per cart is the one honored at placement.
    """

    __tablename__ = "upsell_data"

    upsell_id: Mapped[str] = mapped_column(Text, primary_key=True)
    cart_id: Mapped[str] = mapped_column(
        Text, ForeignKey("cart.cart_id"), nullable=False, index=True
    )
    cafe_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_amount: Mapped[float] = mapped_column(Float, nullable=False)
    target_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    mustaches_to_give: Mapped[int] = mapped_column(Integer, nullable=False)
    offer_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
