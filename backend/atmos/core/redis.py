"""
Redis cache client configuration.
"""

import json
from typing import Any, Optional

from redis.asyncio import Redis, from_url

from atmos.core.config import settings
from atmos.core.metrics import record_cache_operation

redis_client: Optional[Redis] = None


async def get_redis() -> Redis:
    """Get Redis client instance."""
    global redis_client
    if redis_client is None:
        redis_client = from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return redis_client


async def close_redis():
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None


class CacheService:
    """Redis caching service with JSON serialization.

    Keys are namespaced with ``prefix`` so unrelated users of the same Redis
    database (idempotency records, rate limits) never collide.
    """

    def __init__(self, redis: Redis, prefix: str = "atmos"):
        self.redis = redis
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        value = await self.redis.get(self._key(key))
        if value is not None:
            record_cache_operation("hit", cache=self.prefix)
            return json.loads(value)
        record_cache_operation("miss", cache=self.prefix)
        return None

    async def set(
        self, key: str, value: Any, ttl: int = settings.REDIS_CACHE_TTL
    ) -> bool:
        """Set value in cache with TTL."""
        serialized = json.dumps(value, default=str)
        success = await self.redis.setex(self._key(key), ttl, serialized)
        if success:
            record_cache_operation("set", cache=self.prefix)
        return success

    async def add(self, key: str, value: Any, ttl: int = settings.REDIS_CACHE_TTL) -> bool:
        """Set value only if the key does not exist yet (``SET NX``)."""
        serialized = json.dumps(value, default=str)
        added = bool(await self.redis.set(self._key(key), serialized, nx=True, ex=ttl))
        if added:
            record_cache_operation("add", cache=self.prefix)
        return added

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        deleted = bool(await self.redis.delete(self._key(key)))
        if deleted:
            record_cache_operation("delete", cache=self.prefix)
        return deleted
