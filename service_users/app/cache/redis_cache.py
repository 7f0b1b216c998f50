"""
Redis caching layer for the Users Service.
"""

from typing import Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import CacheUnavailableError
from ..users.protocols import CacheLookup, CacheResult


class RedisCache:
    """Redis side-cache for serialized users.

    Only ``start`` may raise. While serving, every failure is logged and
    reported through the returned ``CacheLookup`` / ``CacheResult``.
    """

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.connect_timeout = connect_timeout
        self.logger = get_logger("users.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Start the Redis cache."""
        try:
            if self.redis is None:
                self.redis = redis.from_url(
                    self.redis_url,
                    decode_responses=False,
                    socket_connect_timeout=self.connect_timeout,
                    socket_timeout=self.socket_timeout,
                    health_check_interval=30
                )

            await self.redis.ping()

            self.logger.info("Redis cache started")

        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheUnavailableError(str(e)) from e

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    async def get(self, key: str) -> CacheLookup:
        """Get a cached value. Failures are reported as misses."""
        if self.redis is None:
            return CacheLookup(error="redis client not started")

        try:
            cached_data = await self.redis.get(key)
        except Exception as e:
            self.logger.error("Error reading cache", cache_key=key, error=str(e))
            return CacheLookup(error=str(e))

        if cached_data is None:
            self.logger.debug("Cache miss", cache_key=key)
            return CacheLookup()

        if isinstance(cached_data, str):
            cached_data = cached_data.encode("utf-8")
        return CacheLookup(value=cached_data, hit=True)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> CacheResult:
        """Cache a value with expiry."""
        if self.redis is None:
            return CacheResult(ok=False, error="redis client not started")

        try:
            await self.redis.setex(key, ttl_seconds, value)
        except Exception as e:
            self.logger.error("Error writing cache", cache_key=key, error=str(e))
            return CacheResult(ok=False, error=str(e))

        self.logger.debug("Cached value", cache_key=key, ttl=ttl_seconds)
        return CacheResult(ok=True)

    async def delete(self, *keys: str) -> CacheResult:
        """Delete keys in a single round trip."""
        if not keys:
            return CacheResult(ok=True)
        if self.redis is None:
            return CacheResult(ok=False, error="redis client not started")

        try:
            removed = await self.redis.delete(*keys)
        except Exception as e:
            self.logger.error("Error invalidating cache", cache_keys=list(keys), error=str(e))
            return CacheResult(ok=False, error=str(e))

        self.logger.debug("Invalidated cache keys", cache_keys=list(keys), removed=removed)
        return CacheResult(ok=True)

    async def health_check(self) -> bool:
        """Check Redis health."""
        if self.redis is None:
            return False
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
