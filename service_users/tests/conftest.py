"""
Shared fixtures and in-memory adapters for Users Service tests.
"""

import pytest
from typing import Dict, List, Optional, Tuple
from fastapi.testclient import TestClient

from shared.config import ServiceConfig
from shared.errors import NotFoundError
from shared.metrics import MetricsCollector
from service_users.app.main import UsersService
from service_users.app.users.coordinator import UserCacheCoordinator
from service_users.app.users.models import User, UserCreateRequest
from service_users.app.users.protocols import CacheLookup, CacheResult


class InMemoryUserStore:
    """Dict-backed store honouring the PostgreSQL adapter contract."""

    def __init__(self):
        self.rows: Dict[int, User] = {}
        self.calls: List[Tuple] = []
        self.fail_with: Optional[Exception] = None
        self.started = False
        self._next_id = 1

    def _enter(self, *call):
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def insert(self, draft: UserCreateRequest) -> int:
        self._enter("insert", draft)
        user_id = self._next_id
        self._next_id += 1
        self.rows[user_id] = User(id=user_id, **draft.model_dump())
        return user_id

    async def find_by_id(self, user_id: int) -> User:
        self._enter("find_by_id", user_id)
        if user_id not in self.rows:
            raise NotFoundError(details={"user_id": user_id})
        return self.rows[user_id]

    async def find_all(self) -> List[User]:
        self._enter("find_all")
        return [self.rows[key] for key in sorted(self.rows)]

    async def update(self, user: User) -> int:
        self._enter("update", user)
        if user.id not in self.rows:
            return 0
        self.rows[user.id] = user
        return 1

    async def delete(self, user_id: int) -> int:
        self._enter("delete", user_id)
        return 1 if self.rows.pop(user_id, None) else 0

    async def health_check(self) -> bool:
        return self.fail_with is None


class InMemoryCache:
    """Dict-backed cache honouring the Redis adapter contract.

    The ``fail_*`` switches simulate an unreachable cache.
    """

    def __init__(self):
        self.entries: Dict[str, bytes] = {}
        self.ttls: Dict[str, int] = {}
        self.deleted: List[Tuple[str, ...]] = []
        self.fail_reads = False
        self.fail_writes = False
        self.fail_deletes = False

    async def start(self):
        pass

    async def stop(self):
        pass

    async def get(self, key: str) -> CacheLookup:
        if self.fail_reads:
            return CacheLookup(error="connection refused")
        if key not in self.entries:
            return CacheLookup()
        return CacheLookup(value=self.entries[key], hit=True)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> CacheResult:
        if self.fail_writes:
            return CacheResult(ok=False, error="connection refused")
        self.entries[key] = value
        self.ttls[key] = ttl_seconds
        return CacheResult(ok=True)

    async def delete(self, *keys: str) -> CacheResult:
        if self.fail_deletes:
            return CacheResult(ok=False, error="connection refused")
        self.deleted.append(keys)
        for key in keys:
            self.entries.pop(key, None)
            self.ttls.pop(key, None)
        return CacheResult(ok=True)

    async def health_check(self) -> bool:
        return not self.fail_reads


@pytest.fixture
def store():
    return InMemoryUserStore()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def metrics():
    return MetricsCollector("users")


@pytest.fixture
def coordinator(store, cache, metrics):
    return UserCacheCoordinator(store, cache, ttl_seconds=600, metrics=metrics)


@pytest.fixture
def users_service(store, cache):
    return UsersService(store=store, cache=cache, config=ServiceConfig("users", 8080))


@pytest.fixture
def client(users_service):
    return TestClient(users_service.app)
