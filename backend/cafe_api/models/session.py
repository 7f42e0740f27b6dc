"""
Table session models: TableSession, UserSession.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_shared.config.constants import SessionRole, SessionStatus, UserSessionStatus

from .base import Base, BigIntPK, TimestampMixin, enum_column


class TableSession(TimestampMixin, Base):
    """
    A table's ordering window, shared by every diner who checks in.

    At most one Active session exists per (table, cafe); the partial unique
    index below makes a racing second insert fail instead of opening a
    parallel session.
    """

    __tablename__ = "session"

    session_id: Mapped[str] = mapped_column(Text, primary_key=True)
    table_name: Mapped[str] = mapped_column(Text, nullable=False)
    cafe_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cafe.id"), nullable=False, index=True
    )
    status: Mapped[SessionStatus] = enum_column(
        SessionStatus, default=SessionStatus.ACTIVE, nullable=False
    )
    # 4-digit guest verification code, generated on first check-in
    table_code: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index(
            "uq_session_active_table",
            "table_name",
            "cafe_id",
            unique=True,
            postgresql_where=text("status = 'Active'"),
            sqlite_where=text("status = 'Active'"),
        ),
    )

    user_sessions: Mapped[list["UserSession"]] = relationship(back_populates="session")


class UserSession(Base):
    """Join record of a diner in a session. Open while ``left_at`` is NULL."""

    __tablename__ = "user_session"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        Text, ForeignKey("session.session_id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    role: Mapped[SessionRole] = enum_column(SessionRole, nullable=False)
    status: Mapped[UserSessionStatus] = enum_column(
        UserSessionStatus, default=UserSessionStatus.ACTIVE, nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    left_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    session: Mapped["TableSession"] = relationship(back_populates="user_sessions")
