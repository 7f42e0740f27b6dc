"""
Table session endpoints: check-in, invalidation, status polling, code check.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cafe_api.routers.deps import current_user_id
from cafe_api.services.domain import SessionService
from cafe_shared.infrastructure.db import get_db
from cafe_shared.rate_limit import limiter
from cafe_shared.utils.schemas import (
    CheckInOutput,
    CheckInRequest,
    InvalidateOutput,
    SessionRequest,
    SessionStatusOutput,
    VerifyTableCodeOutput,
    VerifyTableCodeRequest,
)


router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("/check-in", response_model=CheckInOutput)
@limiter.limit("20/minute")
def check_in(
    request: Request,
    body: CheckInRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CheckInOutput:
    """Join the table's Active session, opening one if the table is free."""
    return SessionService(db).check_in(body.table_id, body.cafe_id, user_id)


@router.post("/invalidate", response_model=InvalidateOutput)
@limiter.limit("20/minute")
def invalidate_session(
    request: Request,
    body: SessionRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> InvalidateOutput:
    return SessionService(db).invalidate(body.session_id)


@router.get("/status", response_model=SessionStatusOutput)
@limiter.limit("120/minute")
def session_status(
    request: Request,
    session_id: str,
    db: Session = Depends(get_db),
) -> SessionStatusOutput:
    """Polling endpoint. Unknown sessions report ``active: false``."""
    active = SessionService(db).check_status(session_id)
    return SessionStatusOutput(session_id=session_id, active=active)


@router.post("/verify-code", response_model=VerifyTableCodeOutput)
@limiter.limit("10/minute")
def verify_table_code(
    request: Request,
    body: VerifyTableCodeRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> VerifyTableCodeOutput:
    code = SessionService(db).verify_table_code(body.session_id, body.table_code)
    return VerifyTableCodeOutput(session_id=body.session_id, table_code=code)
