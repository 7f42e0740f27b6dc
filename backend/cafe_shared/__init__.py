"""
Shared modules for the cafe ordering backend.

STRUCTURE:
- cafe_shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Status enums, transition tables, loyalty tiers

- cafe_shared.infrastructure: Database and concurrency
  - db.py: SQLAlchemy sessions, safe_commit()
  - correlation.py: Request correlation ids
  - fanout.py: Fan-out/join of independent blocking tasks

- cafe_shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - identifiers.py: Id and table code minting
  - clock.py: Cafe-local wall clock
  - schemas.py: Shared Pydantic schemas

IMPORT EXAMPLES:
    from cafe_shared.infrastructure.db import get_db, safe_commit
    from cafe_shared.config.settings import settings
    from cafe_shared.config.constants import CartItemStatus, ensure_transition
    from cafe_shared.utils.exceptions import NotFoundError, ConflictError
"""
