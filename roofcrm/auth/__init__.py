"""Authentication module."""

from roofcrm.auth.dependencies import get_current_user, require_admin
from roofcrm.auth.jwt import verify_token

__all__ = [
    "verify_token",
    "get_current_user",
    "require_admin",
]
