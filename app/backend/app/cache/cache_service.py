"""
Leaderboard ranking cache.

JSON payloads in Redis with a short TTL. Disabled unless CACHE_ENABLED is set;
any Redis failure degrades to a cache miss.
"""

import json
from typing import Any, Optional

from app.core.config import settings

from .redis_client import RedisClient, get_redis_client

import structlog

logger = structlog.get_logger(__name__)

RANKINGS_KEY = "leaderboard:rankings:{limit}"
RANKINGS_PATTERN = "leaderboard:rankings:*"


class CacheService:
    """JSON cache with automatic serialization."""

    def __init__(self, redis_client: Optional[RedisClient], ttl: Optional[int] = None):
        self.redis = redis_client
        self.ttl = ttl or settings.leaderboard_cache_ttl

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def get(self, key: str) -> Any:
        if not self.enabled:
            return None
        raw = await self.redis.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Dropping undecodable cache entry", key=key, error=str(e))
            await self.redis.delete(key)
            return None

    async def set(self, key: str, data: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        return await self.redis.set(key, json.dumps(data, default=str), ex=ttl or self.ttl)

    async def delete(self, *keys: str) -> int:
        if not self.enabled:
            return 0
        return await self.redis.delete(*keys)

    async def get_rankings(self, limit: int) -> Any:
        return await self.get(RANKINGS_KEY.format(limit=limit))

    async def set_rankings(self, limit: int, rankings: Any) -> bool:
        return await self.set(RANKINGS_KEY.format(limit=limit), rankings)

    async def invalidate_rankings(self) -> int:
        if not self.enabled:
            return 0
        return await self.redis.delete_matching(RANKINGS_PATTERN)


_disabled_cache = CacheService(None)


async def get_cache_service() -> CacheService:
    """Cache bound to the shared Redis client, or a no-op cache."""
    if not settings.cache_enabled:
        return _disabled_cache
    try:
        return CacheService(await get_redis_client())
    except Exception as e:
        logger.warning("Redis unavailable, caching disabled for this call", error=str(e))
        return _disabled_cache
