"""
Utilities module: Exceptions, identifiers, clock helpers.
"""

from cafe_shared.utils.exceptions import (
    NotFoundError,
    ValidationError,
    ConflictError,
    PersistenceError,
    PartialFailureError,
)

__all__ = [
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "PersistenceError",
    "PartialFailureError",
]
