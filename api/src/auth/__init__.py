"""Access token verification for the learning API."""

from src.auth.dependencies import CurrentUser, StudentUser, get_current_user
from src.auth.permissions import UserRole, has_permission
from src.auth.schemas import AuthenticatedUser


__all__ = [
    "AuthenticatedUser",
    "CurrentUser",
    "StudentUser",
    "UserRole",
    "get_current_user",
    "has_permission",
]
