"""
Session Domain Service.

Owns table check-in, the Active/Inactive session state machine and the
per-diner join records (Host/Guest).
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cafe_api.models import CafeTable, TableSession, UserSession
from cafe_api.services.clock import cafe_local_now
from cafe_shared.config.constants import (
    SESSION_TRANSITIONS,
    SessionRole,
    SessionStatus,
    UserSessionStatus,
    ensure_transition,
)
from cafe_shared.config.logging import session_logger as logger
from cafe_shared.config.settings import Settings, settings
from cafe_shared.infrastructure.db import safe_commit
from cafe_shared.utils.exceptions import (
    NotFoundError,
    PartialFailureError,
    PersistenceError,
    SessionInactiveError,
    SessionNotFoundError,
)
from cafe_shared.utils.identifiers import new_id, new_table_code
from cafe_shared.utils.schemas import CheckInOutput, InvalidateOutput


class SessionService:
    """
    Domain service for table sessions.

    At most one Active session exists per (table, cafe). Concurrent first
    check-ins race on a partial unique index; the loser re-reads the winner's
    session and joins it as Guest.
    """

    def __init__(self, db: Session, config: Settings | None = None):
        self._db = db
        self._settings = config or settings

    # =========================================================================
    # Queries
    # =========================================================================

    def find_active(self, table_id: str, cafe_id: int) -> TableSession | None:
        return self._db.scalar(
            select(TableSession).where(
                TableSession.table_name == table_id,
                TableSession.cafe_id == cafe_id,
                TableSession.status == SessionStatus.ACTIVE,
            )
        )

    def check_status(self, session_id: str) -> bool:
        """True iff the session exists and is Active. Unknown ids are False."""
        status = self._db.scalar(
            select(TableSession.status).where(TableSession.session_id == session_id)
        )
        return status == SessionStatus.ACTIVE

    def require_active(self, session_id: str) -> TableSession:
        """
        Load a session that must be Active.

        Raises:
            SessionNotFoundError: unknown session
            SessionInactiveError: session is Inactive
        """
        session = self._db.scalar(
            select(TableSession).where(TableSession.session_id == session_id)
        )
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise SessionInactiveError(session_id)
        return session

    def verify_table_code(self, session_id: str, table_code: str) -> str:
        """Return the code if it belongs to the Active session, else 404."""
        code = self._db.scalar(
            select(TableSession.table_code).where(
                TableSession.session_id == session_id,
                TableSession.table_code == table_code,
                TableSession.status == SessionStatus.ACTIVE,
            )
        )
        if code is None:
            raise NotFoundError("Table code", session_id=session_id)
        return code

    # =========================================================================
    # Check-in
    # =========================================================================

    def check_in(self, table_id: str, cafe_id: int, user_id: int) -> CheckInOutput:
        """
        Join the Active session of a table, opening one if the table is free.

        The opener is Host, everybody else Guest. A diner who already has an
        open join record keeps the role recorded there.
        """
        if self._settings.validate_tables:
            self._validate_table(table_id, cafe_id)

        session, created = self._resolve_session(table_id, cafe_id, user_id)

        if not session.table_code:
            session.table_code = new_table_code()

        join = self._db.scalar(
            select(UserSession).where(
                UserSession.session_id == session.session_id,
                UserSession.user_id == user_id,
                UserSession.left_at.is_(None),
            )
        )
        if join is not None:
            role = join.role
        else:
            role = SessionRole.HOST if created else SessionRole.GUEST
            self._db.add(
                UserSession(
                    session_id=session.session_id,
                    user_id=user_id,
                    role=role,
                    status=UserSessionStatus.ACTIVE,
                    joined_at=cafe_local_now(self._db, cafe_id, self._settings),
                )
            )

        session_id = session.session_id
        table_code = session.table_code
        safe_commit(self._db, "check_in", session_id=session_id, user_id=user_id)

        logger.info(
            "Diner checked in",
            session_id=session_id,
            table=table_id,
            cafe_id=cafe_id,
            user_id=user_id,
            role=role.value,
            created=created,
        )
        return CheckInOutput(
            session_id=session_id,
            role=role,
            table_code=table_code,
            created=created,
        )

    def _validate_table(self, table_id: str, cafe_id: int) -> None:
        exists = self._db.scalar(
            select(CafeTable.id).where(
                CafeTable.cafe_id == cafe_id,
                CafeTable.name == table_id,
            )
        )
        if exists is None:
            raise NotFoundError("Table", table_id, cafe_id=cafe_id)

    def _resolve_session(
        self, table_id: str, cafe_id: int, user_id: int
    ) -> tuple[TableSession, bool]:
        """Return (session, created)."""
        existing = self.find_active(table_id, cafe_id)
        if existing is not None:
            return existing, False

        new_session = TableSession(
            session_id=new_id(),
            table_name=table_id,
            cafe_id=cafe_id,
            status=SessionStatus.ACTIVE,
            table_code=new_table_code(),
            created_by=user_id,
            start_time=cafe_local_now(self._db, cafe_id, self._settings),
        )
        self._db.add(new_session)
        try:
            self._db.commit()
        except IntegrityError:
            # Another diner opened the table first
            self._db.rollback()
            winner = self.find_active(table_id, cafe_id)
            if winner is None:
                raise PersistenceError("open_session", table=table_id, cafe_id=cafe_id)
            logger.info(
                "Concurrent check-in joined existing session",
                session_id=winner.session_id,
                table=table_id,
                cafe_id=cafe_id,
            )
            return winner, False
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PersistenceError(
                "open_session", table=table_id, cafe_id=cafe_id, cause=str(exc)
            ) from exc

        logger.info(
            "Session opened",
            session_id=new_session.session_id,
            table=table_id,
            cafe_id=cafe_id,
            created_by=user_id,
        )
        return new_session, True

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self, session_id: str) -> InvalidateOutput:
        """
        Close a session and every open join record.

        Two commits: the session first, then the join cascade. If the cascade
        fails the session stays Inactive and PartialFailureError is raised;
        calling invalidate again re-runs only the cascade.
        """
        session = self._db.scalar(
            select(TableSession)
            .where(TableSession.session_id == session_id)
            .with_for_update()
        )
        if session is None:
            raise SessionNotFoundError(session_id)

        now = cafe_local_now(self._db, session.cafe_id, self._settings)

        if session.status == SessionStatus.ACTIVE:
            ensure_transition(
                "Session", session.status, SessionStatus.INACTIVE, SESSION_TRANSITIONS
            )
            session.status = SessionStatus.INACTIVE
            session.end_time = now
            safe_commit(self._db, "invalidate_session", session_id=session_id)
            logger.info("Session invalidated", session_id=session_id)
        else:
            # Release the row lock before the cascade
            self._db.rollback()
            logger.info("Session already inactive, re-running join cascade", session_id=session_id)

        try:
            closed = self._close_open_joins(session_id, now)
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PartialFailureError(
                "user_session_cascade", session_id=session_id, cause=str(exc)
            ) from exc

        logger.info("Closed open joins", session_id=session_id, count=closed)
        return InvalidateOutput(session_id=session_id, closed_user_sessions=closed)

    def _close_open_joins(self, session_id: str, now) -> int:
        result = self._db.execute(
            update(UserSession)
            .where(
                UserSession.session_id == session_id,
                UserSession.left_at.is_(None),
            )
            .values(left_at=now, status=UserSessionStatus.INACTIVE)
        )
        return result.rowcount or 0
