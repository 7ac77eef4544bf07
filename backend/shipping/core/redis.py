"""
Redis client backing the delivery cache.

Short socket timeouts keep a slow Redis from stalling requests; callers
treat any error as a cache miss.
"""
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from shipping.core.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client with JSON caching helpers."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._client: Optional[redis.Redis] = None

    async def get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )
        return self._client

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, key: str) -> Optional[Any]:
        """Get JSON value from cache."""
        client = await self.get_client()
        value = await client.get(key)
        if value:
            return json.loads(value)
        return None

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        """Set JSON value in cache with optional TTL."""
        client = await self.get_client()
        payload = json.dumps(value, default=str)
        if ttl_seconds:
            await client.setex(key, ttl_seconds, payload)
        else:
            await client.set(key, payload)

    async def delete(self, *keys: str) -> None:
        """Delete keys from cache."""
        if not keys:
            return
        client = await self.get_client()
        await client.delete(*keys)

    async def health_check(self) -> bool:
        """Check if Redis is available."""
        try:
            client = await self.get_client()
            await client.ping()
            return True
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False


# Singleton instance
redis_client = RedisClient()
