"""
Cafe catalog models: Cafe, CafeTable, AppUser, MenuItem, ItemCustomization,
ItemFavorite, FcmToken, CafeAdvertisement, CategoryPopularity.

These are maintained by the admin side of the platform; the ordering core
reads them (and writes favourites and popularity counters).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_shared.config.constants import AdStatus

from .base import Base, BigIntPK, TimestampMixin, enum_column


class Cafe(TimestampMixin, Base):
    """
    A cafe.
    ``complete_pos`` cafes run the whole bill through this platform, so order
    details show every diner's orders of the session instead of only today's
    orders of the caller.
    """

    __tablename__ = "cafe"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    complete_pos: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # IANA zone; falls back to settings.cafe_timezone
    timezone: Mapped[Optional[str]] = mapped_column(Text)

    tables: Mapped[list["CafeTable"]] = relationship(back_populates="cafe")


class CafeTable(Base):
    """Physical table, identified by its printed name ("T4", "Patio-2")."""

    __tablename__ = "cafe_table"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cafe_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cafe.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint("cafe_id", "name", name="uq_cafe_table_name"),)

    cafe: Mapped["Cafe"] = relationship(back_populates="tables")


class AppUser(TimestampMixin, Base):
    """Diner account. ``created_at`` is the joined date shown on the profile."""

    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text, index=True)


class MenuItem(Base):
    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cafe_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cafe.id"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    is_customizable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    customizations: Mapped[list["ItemCustomization"]] = relationship(
        back_populates="menu_item"
    )


class ItemCustomization(Base):
    """Customization option ("Oat milk", "Extra shot") of a menu item."""

    __tablename__ = "item_customization"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id"), nullable=False, index=True
    )
    customization_type: Mapped[str] = mapped_column(Text, nullable=False)
    option_name: Mapped[str] = mapped_column(Text, nullable=False)
    additional_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    menu_item: Mapped["MenuItem"] = relationship(back_populates="customizations")


class ItemFavorite(TimestampMixin, Base):
    __tablename__ = "item_favorite"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cafe_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("cafe.id"), nullable=False)
    item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id"), nullable=False
    )

    __table_args__ = (Index("ix_item_favorite_user_cafe", "user_id", "cafe_id"),)


class FcmToken(Base):
    """Staff device registered for new-order pushes of a cafe."""

    __tablename__ = "fcm_token"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cafe_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cafe.id"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(Text, nullable=False)


class CafeAdvertisement(Base):
    """Advertisement shown on the order summary while it is active."""

    __tablename__ = "cafe_advertisement"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cafe_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cafe.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[AdStatus] = enum_column(AdStatus, default=AdStatus.ACTIVE, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class CategoryPopularity(Base):
    """Per-(cafe, category) add-to-cart counter used for menu ordering."""

    __tablename__ = "category_popularity"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cafe_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("cafe.id"), nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    order_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("cafe_id", "category", name="uq_category_popularity"),
    )
