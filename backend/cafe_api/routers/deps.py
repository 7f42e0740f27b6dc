"""
Shared router dependencies.
"""

from fastapi import Header

from cafe_shared.utils.exceptions import UnauthorizedError


def current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    """
    Caller identity forwarded by the auth gateway as ``X-User-Id``.

    Raises UnauthorizedError when the header is missing or not a positive id.
    """
    if not x_user_id or not x_user_id.strip().isdigit() or int(x_user_id) <= 0:
        raise UnauthorizedError("Missing or invalid X-User-Id header")
    return int(x_user_id)
