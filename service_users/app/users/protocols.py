"""
Contracts the coordinator consumes. Adapters satisfy them structurally.
"""

from typing import List, Optional, Protocol
from dataclasses import dataclass

from .models import User, UserCreateRequest


@dataclass
class CacheLookup:
    """Outcome of a cache read. A failed read is a miss carrying the error."""
    value: Optional[bytes] = None
    hit: bool = False
    error: Optional[str] = None


@dataclass
class CacheResult:
    """Outcome of an advisory cache write or delete."""
    ok: bool
    error: Optional[str] = None


class UserStore(Protocol):
    """Authoritative relational store for users."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def insert(self, draft: UserCreateRequest) -> int:
        ...

    async def find_by_id(self, user_id: int) -> User:
        ...

    async def find_all(self) -> List[User]:
        ...

    async def update(self, user: User) -> int:
        """Return the affected row count; zero is not an error."""
        ...

    async def delete(self, user_id: int) -> int:
        """Return the affected row count; zero is not an error."""
        ...

    async def health_check(self) -> bool:
        ...


class UserCache(Protocol):
    """Side-cache that never raises while serving requests."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def get(self, key: str) -> CacheLookup:
        ...

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> CacheResult:
        ...

    async def delete(self, *keys: str) -> CacheResult:
        ...

    async def health_check(self) -> bool:
        ...
