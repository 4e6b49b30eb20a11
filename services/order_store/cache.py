from __future__ import annotations

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.logging import get_database_logger_safe
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.schemas.orders import Order
from core.utils.exceptions import CacheUnavailableError


class ActiveOrderCache:
    """
    Redis-backed snapshot of in-flight orders.

    Entries expire after `ttl_seconds` and are removed explicitly on terminal
    transitions. The order store stays authoritative.
    """

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 3600,
                 namespace: str | None = None, metrics: Optional[OrderPipelineMetrics] = None):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace
        self.metrics = metrics
        self.logger = get_database_logger_safe("cache")

    def _get_key(self, order_id: str) -> str:
        if self.namespace:
            return f"{self.namespace}:active_order:{order_id}"
        return f"active_order:{order_id}"

    async def set_active(self, order: Order) -> None:
        key = self._get_key(order.id)
        try:
            await self.redis_client.setex(key, self.ttl_seconds, order.model_dump_json(by_alias=True))
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Failed to cache order {order.id}: {e}",
                                        operation="setex", key=key) from e

    async def get_active(self, order_id: str) -> Optional[Order]:
        """Return the cached snapshot or None."""
        key = self._get_key(order_id)
        try:
            data = await self.redis_client.get(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Failed to read cached order {order_id}: {e}",
                                        operation="get", key=key) from e

        if data is None:
            if self.metrics:
                self.metrics.record_cache_miss("active_order")
            return None
        if self.metrics:
            self.metrics.record_cache_hit("active_order")
        return Order.model_validate_json(data)

    async def remove_active(self, order_id: str) -> None:
        key = self._get_key(order_id)
        try:
            await self.redis_client.delete(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Failed to evict cached order {order_id}: {e}",
                                        operation="delete", key=key) from e
        self.logger.debug("Active order evicted", order_id=order_id)

    async def close(self) -> None:
        await self.redis_client.aclose()
