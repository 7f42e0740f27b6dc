"""
Loyalty ledger model: RewardTransaction.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from cafe_shared.config.constants import TransactionType

from .base import Base, BigIntPK, enum_column


class RewardTransaction(Base):
    """
    Append-only mustache ledger entry.
    A user's balance is the sum of their credited entries.
    """

    __tablename__ = "reward_transaction"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cafe_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    session_id: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_type: Mapped[TransactionType] = enum_column(TransactionType, nullable=False)
    mustaches: Mapped[int] = mapped_column(Integer, nullable=False)
    # Cafe-local time
    earned_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_reward_user_type", "user_id", "transaction_type"),)
