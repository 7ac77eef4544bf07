"""
Redis cache for delivery and coverage lookups.

Every call is best-effort: a Redis outage degrades to a cache miss and
a warning, never to a failed request.
"""
import logging
import uuid
from typing import Any, Optional

from shipping.core.config import settings
from shipping.core.redis import RedisClient, redis_client

logger = logging.getLogger(__name__)


class DeliveryCache:
    """Read-through cache keyed by delivery id and province."""

    PREFIX = "shipping"

    def __init__(self, client: Optional[RedisClient] = None):
        self.client = client or redis_client

    def delivery_key(self, delivery_id: uuid.UUID) -> str:
        return f"{self.PREFIX}:delivery:{delivery_id}"

    def coverage_key(self, province: str) -> str:
        return f"{self.PREFIX}:coverage:{province.strip().casefold()}"

    async def get_delivery(self, delivery_id: uuid.UUID) -> Optional[dict[str, Any]]:
        try:
            return await self.client.get_json(self.delivery_key(delivery_id))
        except Exception as e:
            logger.warning(f"Cache read failed for delivery {delivery_id}: {e}")
            return None

    async def set_delivery(self, delivery_id: uuid.UUID, data: dict[str, Any]) -> None:
        try:
            await self.client.set_json(self.delivery_key(delivery_id), data, settings.CACHE_TTL_DELIVERY)
        except Exception as e:
            logger.warning(f"Cache write failed for delivery {delivery_id}: {e}")

    async def invalidate_delivery(self, *delivery_ids: uuid.UUID) -> None:
        if not delivery_ids:
            return
        try:
            await self.client.delete(*[self.delivery_key(d) for d in delivery_ids])
        except Exception as e:
            logger.warning(f"Cache invalidation failed for deliveries {delivery_ids}: {e}")

    async def get_coverage(self, province: str) -> Optional[dict[str, Any]]:
        try:
            return await self.client.get_json(self.coverage_key(province))
        except Exception as e:
            logger.warning(f"Cache read failed for coverage {province}: {e}")
            return None

    async def set_coverage(self, province: str, data: dict[str, Any]) -> None:
        try:
            await self.client.set_json(self.coverage_key(province), data, settings.CACHE_TTL_COVERAGE)
        except Exception as e:
            logger.warning(f"Cache write failed for coverage {province}: {e}")

    async def invalidate_coverage(self, province: str) -> None:
        try:
            await self.client.delete(self.coverage_key(province))
        except Exception as e:
            logger.warning(f"Cache invalidation failed for coverage {province}: {e}")


# Singleton instance
delivery_cache = DeliveryCache()
