"""
Users domain for the Users Service.

Exports the user models and the cache-aside coordinator that sits between the
relational store and the cache.
"""

from .models import User, UserCreateRequest, UserUpdateRequest, ReadResult
from .coordinator import UserCacheCoordinator, USER_LIST_KEY, user_key

__all__ = [
    "User",
    "UserCreateRequest",
    "UserUpdateRequest",
    "ReadResult",
    "UserCacheCoordinator",
    "USER_LIST_KEY",
    "user_key",
]
