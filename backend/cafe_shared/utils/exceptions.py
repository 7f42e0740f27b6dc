"""
Centralized HTTP exceptions for consistent error handling.

Every service raises these directly; FastAPI turns them into responses because
they subclass HTTPException. Validation and conflict errors carry a specific
reason. Persistence and partial failures return a generic message and keep the
internal detail in the log context.

Usage:
    from cafe_shared.utils.exceptions import NotFoundError, ConflictError

    raise NotFoundError("Cart", cart_id)
    raise ConflictError("Session is inactive", session_id=session_id)
"""

from typing import Any

from fastapi import HTTPException, status

from cafe_shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions inherit from this class so that every raise
    leaves a structured log line with its context.
    """

    kind: str = "error"

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, kind=self.kind, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Cart", cart_id)
        raise NotFoundError("Table", table_id, cafe_id=cafe_id)
    """

    kind = "not_found"

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class SessionNotFoundError(NotFoundError):
    """Table session not found."""

    def __init__(self, session_id: str | None = None, **log_context: Any):
        super().__init__("Session", session_id, **log_context)


class CartNotFoundError(NotFoundError):
    """Cart not found (or not owned by the caller)."""

    def __init__(self, cart_id: str | None = None, **log_context: Any):
        super().__init__("Cart", cart_id, **log_context)


class CartItemNotFoundError(NotFoundError):
    """Cart item not found."""

    def __init__(self, cart_item_id: str | None = None, **log_context: Any):
        super().__init__("Cart item", cart_item_id, **log_context)


class OrderNotFoundError(NotFoundError):
    """Order not found."""

    def __init__(self, order_id: str | None = None, **log_context: Any):
        super().__init__("Order", order_id, **log_context)


# =============================================================================
# 401 Unauthorized Errors
# =============================================================================


class UnauthorizedError(AppException):
    """
    Missing or malformed caller identity (401).

    The upstream gateway authenticates diners and forwards X-User-Id.
    """

    kind = "unauthorized"

    def __init__(self, detail: str = "Not authenticated", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("total_amount must be positive", field="total_amount")
    """

    kind = "validation"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    State conflict error (409).

    Usage:
        raise ConflictError("Session is inactive", session_id=session_id)
    """

    kind = "conflict"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class SessionInactiveError(ConflictError):
    """Operation requires an Active session."""

    def __init__(self, session_id: str, **log_context: Any):
        super().__init__("Session is inactive", session_id=session_id, **log_context)


class InvalidTransitionError(ConflictError):
    """Invalid status transition."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        super().__init__(
            detail,
            entity=entity,
            from_status=from_status,
            to_status=to_status,
            **log_context,
        )


class CartTotalMismatchError(ConflictError):
    """Client-declared cart total disagrees with the server-side total."""

    def __init__(self, cart_id: str, declared: float, computed: float, **log_context: Any):
        detail = (
            f"Cart total mismatch: declared {declared:.2f}, "
            f"computed {computed:.2f}"
        )
        super().__init__(
            detail,
            cart_id=cart_id,
            declared=declared,
            computed=computed,
            **log_context,
        )
        self.declared = declared
        self.computed = computed


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Failed to process order", order_id=order_id)
    """

    kind = "internal"

    def __init__(
        self,
        detail: str = "Internal server error",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            headers=headers,
            **log_context,
        )


class PersistenceError(InternalError):
    """Store I/O failed. The transaction has been rolled back."""

    kind = "persistence"

    def __init__(self, operation: str, **log_context: Any):
        super().__init__(
            "Database error. Please try again.",
            operation=operation,
            **log_context,
        )
        self.operation = operation


class PartialFailureError(InternalError):
    """
    A write group failed after an earlier write was already committed.

    Callers must reconcile (e.g. look up ``order_id``) instead of blindly
    retrying, which would duplicate the committed writes.
    """

    kind = "partial_failure"

    def __init__(
        self,
        stage: str,
        order_id: str | None = None,
        failures: dict[str, str] | None = None,
        **log_context: Any,
    ):
        headers = {"X-Order-Id": order_id} if order_id else None
        super().__init__(
            "Request partially completed. Please contact staff before retrying.",
            headers=headers,
            stage=stage,
            order_id=order_id,
            failures=failures,
            **log_context,
        )
        self.stage = stage
        self.order_id = order_id
        self.failures = failures or {}
