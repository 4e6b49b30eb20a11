import json

import pytest

from core.schemas.orders import Order, OrderStatus
from core.utils.exceptions import CacheUnavailableError
from services.order_store import ActiveOrderCache


class TestActiveOrderCache:
    @pytest.mark.asyncio
    async def test_set_writes_snapshot_with_ttl(self, cache, fake_redis, make_order):
        order = make_order()
        await cache.set_active(order)

        key = f"active_order:{order.id}"
        assert fake_redis.ttls[key] == 3600
        assert json.loads(fake_redis.store[key])["tokenIn"] == "SOL"

    @pytest.mark.asyncio
    async def test_get_round_trips_order(self, cache, make_order):
        order = make_order(amount="12.5")
        await cache.set_active(order.model_copy(update={"status": OrderStatus.BUILDING}))

        cached = await cache.get_active(order.id)

        assert isinstance(cached, Order)
        assert cached.status is OrderStatus.BUILDING
        assert str(cached.amount) == "12.5"

    @pytest.mark.asyncio
    async def test_miss_returns_none_and_counts(self, cache, metrics):
        assert await cache.get_active("order_missing") is None
        assert metrics.registry.get_sample_value("cache_misses_total", {"cache_type": "active_order"}) == 1.0

    @pytest.mark.asyncio
    async def test_remove_evicts_entry(self, cache, fake_redis, make_order):
        order = make_order()
        await cache.set_active(order)
        await cache.remove_active(order.id)
        assert await cache.get_active(order.id) is None
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_namespace_prefixes_keys(self, fake_redis, make_order):
        cache = ActiveOrderCache(fake_redis, ttl_seconds=60, namespace="staging")
        order = make_order()
        await cache.set_active(order)
        assert list(fake_redis.store) == [f"staging:active_order:{order.id}"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["set", "get", "remove"])
    async def test_redis_failure_raises_cache_unavailable(self, cache, fake_redis, make_order, operation):
        order = make_order()
        fake_redis.fail = True
        with pytest.raises(CacheUnavailableError) as exc_info:
            if operation == "set":
                await cache.set_active(order)
            elif operation == "get":
                await cache.get_active(order.id)
            else:
                await cache.remove_active(order.id)
        assert exc_info.value.key == f"active_order:{order.id}"
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_close_releases_client(self, cache, fake_redis):
        await cache.close()
        assert fake_redis.closed
