"""
Shared Redis connection for the ranking cache.

Every key is namespaced with ``REDIS_PREFIX`` so several deployments can
share one Redis database. Read and write failures are logged and reported
as misses; connection failures propagate to the caller.
"""

import asyncio
from typing import Any, Dict, Optional, Union

import redis.asyncio as redis

from app.core.config import settings

import structlog

logger = structlog.get_logger(__name__)

MAX_CONNECTIONS = 20
SCAN_BATCH = 100


class RedisClient:
    """Prefixed key/value access over a redis.asyncio connection pool."""

    def __init__(self, url: Optional[str] = None, prefix: Optional[str] = None):
        self.url = url or settings.redis_url
        self.prefix = settings.redis_prefix if prefix is None else prefix
        self._redis: Optional[redis.Redis] = None

    def namespaced(self, key: str) -> str:
        return self.prefix + key

    @property
    def connected(self) -> bool:
        return self._redis is not None

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._redis

    async def connect(self) -> None:
        if self._redis is not None:
            return

        conn = redis.Redis.from_url(
            self.url,
            decode_responses=True,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
        )
        try:
            await conn.ping()
        except Exception as e:
            await conn.aclose()
            logger.error("Redis unreachable", url=self.url, error=str(e))
            raise

        self._redis = conn
        logger.info("Redis connected", url=self.url, prefix=self.prefix)

    async def disconnect(self) -> None:
        if self._redis is None:
            return
        conn, self._redis = self._redis, None
        try:
            await conn.aclose()
        except Exception as e:
            logger.warning("Error closing Redis connection", error=str(e))
        else:
            logger.info("Redis connection closed")

    async def health_check(self) -> Dict[str, Any]:
        """Ping round trip in milliseconds, or the reason Redis is unusable."""
        if self._redis is None:
            return {"status": "disconnected"}

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            ok = await self._redis.ping()
        except Exception as e:
            return {"status": "error", "error": str(e)}
        return {
            "status": "healthy" if ok else "unhealthy",
            "ping_ms": round((loop.time() - started) * 1000, 2),
        }

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(self.namespaced(key))
        except Exception as e:
            logger.error("Redis GET failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Union[str, int, float], ex: Optional[int] = None) -> bool:
        try:
            return bool(await self.redis.set(self.namespaced(key), value, ex=ex))
        except Exception as e:
            logger.error("Redis SET failed", key=key, error=str(e))
            return False

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.redis.delete(*(self.namespaced(k) for k in keys))
        except Exception as e:
            logger.error("Redis DELETE failed", keys=list(keys), error=str(e))
            return 0

    async def delete_matching(self, pattern: str) -> int:
        """Delete every key under the prefix matching a glob ``pattern``."""
        try:
            found = [k async for k in self.redis.scan_iter(match=self.namespaced(pattern), count=SCAN_BATCH)]
            return await self.redis.delete(*found) if found else 0
        except Exception as e:
            logger.error("Redis pattern delete failed", pattern=pattern, error=str(e))
            return 0


_shared: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """Connected process-wide client; raises when Redis is unreachable."""
    global _shared

    if _shared is None:
        client = RedisClient()
        await client.connect()
        _shared = client
    return _shared


async def close_redis_client() -> None:
    global _shared

    if _shared is not None:
        client, _shared = _shared, None
        await client.disconnect()


def shared_client() -> Optional[RedisClient]:
    """The process-wide client if one is already connected."""
    return _shared

