"""
Base class and TimestampMixin for all SQLAlchemy ORM models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import BigInteger, DateTime, Integer
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def enum_column(enum_cls: type[Enum], **kwargs: Any) -> Any:
    """
    Status column stored by enum *value* ("Active", "Canceled", ...).

    Values outside the enum are rejected on load and on flush.
    """
    return mapped_column(
        SAEnum(
            enum_cls,
            native_enum=False,
            validate_strings=True,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs,
    )


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """
    Row creation time (UTC, microsecond precision).

    Used to pick the most recent row of a kind; business timestamps such as
    ``order_time`` are stored separately in cafe-local time.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        pk = self.__mapper__.primary_key[0].name  # type: ignore[attr-defined]
        return f"<{class_name}({pk}={getattr(self, pk, None)})>"
