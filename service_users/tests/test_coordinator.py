"""
Unit tests for the cache-aside coordinator.
"""

import json
import pytest

from shared.errors import NotFoundError, StoreError, StoreUnavailableError
from service_users.app.users.coordinator import (
    UserCacheCoordinator, USER_LIST_KEY, user_key
)
from service_users.app.users.models import User, UserCreateRequest


def _counter(metrics, name, **labels):
    return metrics.registry.get_sample_value(f"{name}_total", labels) or 0.0


@pytest.fixture
def ann():
    return UserCreateRequest(name="Ann", email="a@x.com", age=30)


class TestReadById:
    """Read-through behaviour for single users."""

    @pytest.mark.asyncio
    async def test_miss_falls_back_to_store_and_populates_cache(self, coordinator, store, cache, ann):
        user_id = await store.insert(ann)

        result = await coordinator.read_by_id(user_id)

        assert result.cached is False
        assert result.data == User(id=user_id, name="Ann", email="a@x.com", age=30)
        assert json.loads(cache.entries[user_key(user_id)]) == result.data.model_dump()
        assert cache.ttls[user_key(user_id)] == 600

    @pytest.mark.asyncio
    async def test_second_read_is_cached_and_identical(self, coordinator, store, ann):
        user_id = await store.insert(ann)

        first = await coordinator.read_by_id(user_id)
        second = await coordinator.read_by_id(user_id)

        assert first.cached is False
        assert second.cached is True
        assert second.data == first.data
        assert store.count("find_by_id") == 1

    @pytest.mark.asyncio
    async def test_hit_does_not_touch_store(self, coordinator, store, cache):
        cache.entries[user_key(7)] = b'{"id": 7, "name": "Bo", "email": "b@x.com", "age": 41}'

        result = await coordinator.read_by_id(7)

        assert result.cached is True
        assert result.data.name == "Bo"
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_corrupt_entry_falls_back_to_store(self, coordinator, store, cache, metrics, ann):
        user_id = await store.insert(ann)
        cache.entries[user_key(user_id)] = b"\x00not json"

        result = await coordinator.read_by_id(user_id)

        assert result.cached is False
        assert result.data.id == user_id
        assert json.loads(cache.entries[user_key(user_id)])["name"] == "Ann"
        assert _counter(metrics, "cache_requests", key_kind="user", result="corrupt") == 1

    @pytest.mark.asyncio
    async def test_wrong_shape_entry_falls_back_to_store(self, coordinator, store, cache, ann):
        user_id = await store.insert(ann)
        cache.entries[user_key(user_id)] = b'{"id": "x"}'

        result = await coordinator.read_by_id(user_id)

        assert result.cached is False
        assert store.count("find_by_id") == 1

    @pytest.mark.asyncio
    async def test_not_found_propagates(self, coordinator, cache):
        with pytest.raises(NotFoundError):
            await coordinator.read_by_id(404)

        assert user_key(404) not in cache.entries

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, coordinator, store):
        store.fail_with = StoreUnavailableError("connection refused")

        with pytest.raises(StoreUnavailableError):
            await coordinator.read_by_id(1)

    @pytest.mark.asyncio
    async def test_cache_read_failure_is_a_miss(self, coordinator, store, cache, metrics, ann):
        user_id = await store.insert(ann)
        cache.fail_reads = True

        result = await coordinator.read_by_id(user_id)

        assert result.cached is False
        assert result.data.id == user_id
        assert _counter(metrics, "cache_errors", operation="get") == 1

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_affect_result(self, coordinator, store, cache, metrics, ann):
        user_id = await store.insert(ann)
        cache.fail_writes = True

        result = await coordinator.read_by_id(user_id)

        assert result.data.id == user_id
        assert cache.entries == {}
        assert _counter(metrics, "cache_errors", operation="set") == 1


class TestReadAll:
    """Read-through behaviour for the user list."""

    @pytest.mark.asyncio
    async def test_empty_store_returns_empty_list(self, coordinator, cache):
        result = await coordinator.read_all()

        assert result.data == []
        assert result.cached is False
        assert json.loads(cache.entries[USER_LIST_KEY]) == []

    @pytest.mark.asyncio
    async def test_list_is_cached_in_id_order(self, coordinator, store):
        await store.insert(UserCreateRequest(name="Ann", email="a@x.com", age=30))
        await store.insert(UserCreateRequest(name="Bo", email="b@x.com", age=41))

        first = await coordinator.read_all()
        second = await coordinator.read_all()

        assert [user.id for user in first.data] == [1, 2]
        assert second.cached is True
        assert second.data == first.data
        assert store.count("find_all") == 1

    @pytest.mark.asyncio
    async def test_corrupt_list_falls_back_to_store(self, coordinator, store, cache, ann):
        await store.insert(ann)
        cache.entries[USER_LIST_KEY] = b'{"not": "a list"}'

        result = await coordinator.read_all()

        assert result.cached is False
        assert [user.name for user in result.data] == ["Ann"]


class TestWrites:
    """Write-invalidate behaviour."""

    @pytest.mark.asyncio
    async def test_create_returns_assigned_id_and_invalidates_list(self, coordinator, store, cache, ann):
        await coordinator.read_all()

        user = await coordinator.create(ann)

        assert user == User(id=1, name="Ann", email="a@x.com", age=30)
        assert USER_LIST_KEY not in cache.entries
        assert cache.deleted == [(USER_LIST_KEY,)]

        listed = await coordinator.read_all()
        assert listed.cached is False
        assert [u.id for u in listed.data] == [1]

    @pytest.mark.asyncio
    async def test_update_invalidates_list_and_entity(self, coordinator, store, cache, ann):
        user_id = await store.insert(ann)
        await coordinator.read_by_id(user_id)
        await coordinator.read_all()

        updated = await coordinator.update(User(id=user_id, name="Ann", email="a@x.com", age=31))

        assert updated.age == 31
        assert cache.deleted == [(USER_LIST_KEY, user_key(user_id))]

        listed = await coordinator.read_all()
        single = await coordinator.read_by_id(user_id)
        assert listed.data[0].age == 31
        assert single.cached is False
        assert single.data.age == 31

    @pytest.mark.asyncio
    async def test_delete_invalidates_entity_so_not_found_follows(self, coordinator, store, cache, ann):
        user_id = await store.insert(ann)
        await coordinator.read_by_id(user_id)

        await coordinator.delete(user_id)

        with pytest.raises(NotFoundError):
            await coordinator.read_by_id(user_id)

    @pytest.mark.asyncio
    async def test_list_only_policy_leaves_entity_until_ttl(self, store, cache, ann):
        coordinator = UserCacheCoordinator(store, cache, invalidate_entity_on_write=False)
        user_id = await store.insert(ann)
        await coordinator.read_by_id(user_id)

        await coordinator.delete(user_id)

        assert cache.deleted == [(USER_LIST_KEY,)]
        stale = await coordinator.read_by_id(user_id)
        assert stale.cached is True

    @pytest.mark.asyncio
    async def test_update_of_missing_id_still_succeeds(self, coordinator, store, cache):
        ghost = User(id=99, name="Nobody", email="n@x.com", age=1)

        result = await coordinator.update(ghost)

        assert result == ghost
        assert store.rows == {}
        assert cache.deleted == [(USER_LIST_KEY, user_key(99))]

    @pytest.mark.asyncio
    async def test_delete_of_missing_id_still_succeeds(self, coordinator, cache):
        await coordinator.delete(99)

        assert cache.deleted == [(USER_LIST_KEY, user_key(99))]

    @pytest.mark.asyncio
    async def test_failed_store_write_skips_invalidation(self, coordinator, store, cache, ann):
        await coordinator.read_all()
        store.fail_with = StoreError("duplicate key")

        with pytest.raises(StoreError):
            await coordinator.create(ann)

        assert cache.deleted == []
        assert USER_LIST_KEY in cache.entries

    @pytest.mark.asyncio
    async def test_failed_invalidation_is_absorbed(self, coordinator, cache, metrics, ann):
        cache.fail_deletes = True

        user = await coordinator.create(ann)

        assert user.id == 1
        assert _counter(metrics, "cache_errors", operation="delete") == 1
        assert _counter(metrics, "cache_invalidations", key_kind="list") == 0
