"""
Optional Redis cache in front of leaderboard rankings.
"""

from .redis_client import RedisClient, get_redis_client, close_redis_client, shared_client
from .cache_service import CacheService, get_cache_service

__all__ = [
    "RedisClient",
    "get_redis_client",
    "close_redis_client",
    "shared_client",
    "CacheService",
    "get_cache_service",
]
