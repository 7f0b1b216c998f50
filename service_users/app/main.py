"""
Users service: CRUD over HTTP with a cache-aside read path.
"""

from typing import Optional

from fastapi import Path

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import (
    ResponseEnvelope, StoreError, RETURN_CODE_SUCCESS
)

from .users.coordinator import UserCacheCoordinator
from .users.models import User, UserCreateRequest, UserUpdateRequest, ReadResult
from .users.protocols import UserStore, UserCache
from .persistence.postgres import PostgreSQLUserStore
from .cache.redis_cache import RedisCache


def _success(description: str, data=None) -> ResponseEnvelope:
    return ResponseEnvelope(return_code=RETURN_CODE_SUCCESS, return_desc=description, data=data)


def _read_success(result: ReadResult) -> ResponseEnvelope:
    return _success("Success (cached)" if result.cached else "Success", result.data)


class UsersService(BaseService):
    """Users service implementation.

    Store and cache adapters may be injected; otherwise they are built from
    configuration and connected when the application starts.
    """

    def __init__(
        self,
        store: Optional[UserStore] = None,
        cache: Optional[UserCache] = None,
        config: Optional[ServiceConfig] = None,
    ):
        super().__init__("users", 8080, config=config)

        self.store = store or PostgreSQLUserStore(
            self.config.postgres_dsn,
            min_size=self.config.postgres_min_pool_size,
            max_size=self.config.postgres_max_pool_size,
            command_timeout=self.config.postgres_command_timeout,
            metrics=self.metrics
        )
        self.cache = cache or RedisCache(
            self.config.redis_url,
            socket_timeout=self.config.redis_socket_timeout,
            connect_timeout=self.config.redis_connect_timeout
        )
        self.coordinator = UserCacheCoordinator(
            self.store,
            self.cache,
            ttl_seconds=self.config.cache_ttl_seconds,
            invalidate_entity_on_write=self.config.cache_invalidate_entity_on_write,
            metrics=self.metrics
        )

        self._setup_users_routes()

    def _setup_users_routes(self):
        """Set up users routes."""

        envelope = dict(response_model=ResponseEnvelope, response_model_exclude_none=True)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "users",
                "message": "Users Service",
                "version": "1.0.0",
                "capabilities": ["crud", "caching", "persistence"]
            }

        @self.app.post("/users", **envelope)
        async def create_user(request: UserCreateRequest):
            """Create a user. The id is assigned by the store."""
            try:
                user = await self.coordinator.create(request)
            except StoreError as e:
                raise e.with_description("Failed to create user")
            return _success("User created successfully", user)

        @self.app.get("/users", **envelope)
        async def get_users():
            """List all users, possibly from cache."""
            try:
                result = await self.coordinator.read_all()
            except StoreError as e:
                raise e.with_description("Failed to fetch users")
            return _read_success(result)

        @self.app.get("/users/{user_id}", **envelope)
        async def get_user(user_id: int = Path(..., description="User ID")):
            """Get one user, possibly from cache. Unknown ids yield returnCode 01."""
            try:
                result = await self.coordinator.read_by_id(user_id)
            except StoreError as e:
                raise e.with_description("Failed to fetch user")
            return _read_success(result)

        @self.app.put("/users", **envelope)
        async def update_user(request: UserUpdateRequest):
            """Replace a user by id.

            Succeeds even when the id does not exist; the store does not
            report whether a row matched.
            """
            try:
                user = await self.coordinator.update(User(**request.model_dump()))
            except StoreError as e:
                raise e.with_description("Failed to update user")
            return _success("User updated successfully", user)

        @self.app.delete("/users/{user_id}", **envelope)
        async def delete_user(user_id: int = Path(..., description="User ID")):
            """Delete a user by id. Same no-op caveat as update."""
            try:
                await self.coordinator.delete(user_id)
            except StoreError as e:
                raise e.with_description("Failed to delete user")
            return _success("User deleted successfully")

    async def _check_dependencies(self):
        """Check users service dependencies."""
        dependencies = {}

        try:
            dependencies["redis"] = "ok" if await self.cache.health_check() else "error"
        except Exception:
            dependencies["redis"] = "error"

        try:
            dependencies["postgres"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["postgres"] = "error"

        return dependencies

    async def start(self):
        """Connect the store and the cache. Either failing aborts startup."""
        await self.store.start()
        await self.cache.start()

        self.logger.info("Users service started", port=self.config.port)

    async def stop(self):
        """Close the store and the cache."""
        await self.cache.stop()
        await self.store.stop()

        self.logger.info("Users service stopped")


def create_app():
    """Create users service application."""
    service = UsersService()
    return service.app


if __name__ == "__main__":
    service = UsersService()
    service.run()
