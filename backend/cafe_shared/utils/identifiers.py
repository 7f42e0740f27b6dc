"""
Identifier minting.

Entity ids are opaque 32-char hex strings; callers may also supply their own
(the mobile client mints cart and cart item ids offline).
"""

import secrets
import uuid

from cafe_shared.config.constants import Limits


def new_id() -> str:
    """Mint a new opaque entity id."""
    return uuid.uuid4().hex


def new_table_code() -> str:
    """
    Random zero-padded numeric table code, e.g. "0427".

    Not unique across tables; guests also need the session id to join.
    """
    digits = Limits.TABLE_CODE_DIGITS
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"
