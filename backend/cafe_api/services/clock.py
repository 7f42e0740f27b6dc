"""
Cafe-aware clock for services.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe_api.models import Cafe
from cafe_shared.config.settings import Settings
from cafe_shared.utils.clock import cafe_now


def cafe_local_now(db: Session, cafe_id: int, config: Settings) -> datetime:
    """Current wall time in the cafe's own zone (or the configured default)."""
    tz_name = db.scalar(select(Cafe.timezone).where(Cafe.id == cafe_id))
    return cafe_now(tz_name or config.cafe_timezone)
