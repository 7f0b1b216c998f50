"""
Cache-aside coordination between the user store and the user cache.

Reads go cache first, fall back to the store on a miss and then populate the
cache. Writes go to the store first and then invalidate the affected keys.
The store is always the authority; cache entries are derived copies that
expire after ``ttl_seconds``.

Key scheme:

- ``user:<id>``  single serialized user, written on a read miss
- ``users``      serialized list of all users ordered by id, written on a
                 list read miss

Every write invalidates ``users``. Update and delete also invalidate
``user:<id>`` unless ``invalidate_entity_on_write`` is off, in which case a
stale entry may be served until its TTL runs out.

Cache failures never reach the caller: a failed or unreadable lookup is a
miss, a failed populate or invalidate is logged and dropped.
"""

from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from pydantic import TypeAdapter

from shared.logging import get_logger, set_user_id
from shared.metrics import MetricsCollector
from shared.tracing import trace_function, add_span_attributes

from .models import (
    User, UserCreateRequest, ReadResult, USER_ADAPTER, USER_LIST_ADAPTER
)
from .protocols import UserStore, UserCache, CacheResult


T = TypeVar("T")

USER_KEY_PREFIX = "user:"
USER_LIST_KEY = "users"
DEFAULT_TTL_SECONDS = 600


def user_key(user_id: int) -> str:
    """Cache key for a single user."""
    return f"{USER_KEY_PREFIX}{user_id}"


def _key_kind(key: str) -> str:
    return "list" if key == USER_LIST_KEY else "user"


class UserCacheCoordinator:
    """Read-through / write-invalidate orchestration for users."""

    def __init__(
        self,
        store: UserStore,
        cache: UserCache,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        invalidate_entity_on_write: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.invalidate_entity_on_write = invalidate_entity_on_write
        self.metrics = metrics
        self.logger = get_logger("users.coordinator")

    @trace_function("users.read_by_id")
    async def read_by_id(self, user_id: int) -> ReadResult[User]:
        """Return one user, from cache when possible.

        Raises NotFoundError when the store has no such row and StoreError
        (or StoreUnavailableError) when the store fails.
        """
        set_user_id(user_id)
        add_span_attributes(user_id=user_id)
        return await self._read_through(
            user_key(user_id),
            USER_ADAPTER,
            lambda: self.store.find_by_id(user_id),
        )

    @trace_function("users.read_all")
    async def read_all(self) -> ReadResult[List[User]]:
        """Return every user ordered by id, from cache when possible."""
        return await self._read_through(
            USER_LIST_KEY,
            USER_LIST_ADAPTER,
            self.store.find_all,
        )

    @trace_function("users.create")
    async def create(self, draft: UserCreateRequest) -> User:
        """Insert a user and invalidate the list entry."""
        user_id = await self.store.insert(draft)
        set_user_id(user_id)
        user = User(id=user_id, **draft.model_dump())

        await self._invalidate(USER_LIST_KEY)

        self.logger.info("User created")
        return user

    @trace_function("users.update")
    async def update(self, user: User) -> User:
        """Replace a user by id and invalidate the affected entries.

        Succeeds even when no row matched the id; the store cannot tell a
        no-op from a real update.
        """
        set_user_id(user.id)
        add_span_attributes(user_id=user.id)
        matched = await self.store.update(user)
        if not matched:
            self.logger.info("Update matched no rows")

        await self._invalidate(*self._write_keys(user.id))

        self.logger.info("User updated")
        return user

    @trace_function("users.delete")
    async def delete(self, user_id: int) -> None:
        """Delete a user by id and invalidate the affected entries.

        Same no-op caveat as update.
        """
        set_user_id(user_id)
        add_span_attributes(user_id=user_id)
        matched = await self.store.delete(user_id)
        if not matched:
            self.logger.info("Delete matched no rows")

        await self._invalidate(*self._write_keys(user_id))

        self.logger.info("User deleted")

    def _write_keys(self, user_id: int) -> List[str]:
        if self.invalidate_entity_on_write:
            return [USER_LIST_KEY, user_key(user_id)]
        return [USER_LIST_KEY]

    async def _read_through(
        self,
        key: str,
        adapter: TypeAdapter,
        load: Callable[[], Awaitable[T]],
    ) -> ReadResult[T]:
        kind = _key_kind(key)

        lookup = await self.cache.get(key)
        if lookup.hit:
            try:
                value = adapter.validate_json(lookup.value)
            except ValueError as e:
                # pydantic's ValidationError subclasses ValueError
                self.logger.warning("Discarding unreadable cache entry", cache_key=key, error=str(e))
                self._count("cache_requests_total", key_kind=kind, result="corrupt")
            else:
                self.logger.debug("Cache hit", cache_key=key)
                self._count("cache_requests_total", key_kind=kind, result="hit")
                add_span_attributes(cache_hit=True)
                return ReadResult(data=value, cached=True)
        else:
            if lookup.error:
                self._count("cache_errors_total", operation="get")
            self._count("cache_requests_total", key_kind=kind, result="miss")

        add_span_attributes(cache_hit=False)
        value = await load()

        self._advise("set", key, await self.cache.set(key, adapter.dump_json(value), self.ttl_seconds))
        return ReadResult(data=value, cached=False)

    async def _invalidate(self, *keys: str) -> None:
        result = await self.cache.delete(*keys)
        self._advise("delete", ",".join(keys), result)
        if result.ok:
            for key in keys:
                self._count("cache_invalidations_total", key_kind=_key_kind(key))

    def _advise(self, operation: str, key: str, result: CacheResult) -> None:
        """Log an advisory cache call that failed. The result is not propagated."""
        if result.ok:
            return
        self.logger.warning(
            "Advisory cache call failed",
            operation=operation,
            cache_key=key,
            error=result.error,
        )
        self._count("cache_errors_total", operation=operation)

    def _count(self, metric_name: str, **labels: Any) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
