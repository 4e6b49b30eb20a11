import json
from unittest.mock import AsyncMock

import pytest

from core.schemas.orders import OrderStatus
from core.utils.exceptions import OrderNotFoundError, QueueClosedError, ValidationError
from tests.mocks.order_engine_fakes import RecordingTransport, wait_for


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_returns_id_and_publishes_pending_first(self, order_service, processor,
                                                                 repository):
        processor.start()
        transport = RecordingTransport()

        order_id = await order_service.submit(
            {"tokenIn": "SOL", "tokenOut": "USDC", "amount": 100}, transport
        )

        assert order_id
        assert order_id in repository.orders
        await wait_for(lambda: len(transport.sent) == 5)
        statuses = [json.loads(p)["status"] for p in transport.sent]
        assert statuses == ["pending", "routing", "building", "submitted", "confirmed"]
        assert json.loads(transport.sent[0])["orderId"] == order_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload,field", [
        ({"tokenIn": "SOL", "tokenOut": "USDC", "amount": 0}, "amount"),
        ({"tokenIn": "SOL", "tokenOut": "USDC", "amount": -5}, "amount"),
        ({"tokenOut": "USDC", "amount": 10}, "tokenIn"),
        ({"tokenIn": "SOL", "tokenOut": "USDC", "amount": 10, "type": "twap"}, "type"),
    ])
    async def test_invalid_requests_are_rejected_before_persisting(self, order_service, repository,
                                                                   payload, field):
        with pytest.raises(ValidationError) as exc_info:
            await order_service.submit(payload)

        assert exc_info.value.field == field
        assert repository.orders == {}

    @pytest.mark.asyncio
    async def test_same_token_pair_is_rejected(self, order_service, repository):
        with pytest.raises(ValidationError):
            await order_service.submit({"tokenIn": "SOL", "tokenOut": "sol", "amount": 1})
        assert repository.orders == {}

    @pytest.mark.asyncio
    async def test_enqueue_failure_marks_order_failed(self, order_service, processor, repository, fanout):
        processor.queue.enqueue = AsyncMock(side_effect=QueueClosedError("closing"))
        transport = RecordingTransport()

        with pytest.raises(QueueClosedError):
            await order_service.submit({"tokenIn": "SOL", "tokenOut": "USDC", "amount": 1}, transport)

        [order] = repository.orders.values()
        assert order.status is OrderStatus.FAILED
        assert "Failed to queue order" in order.error
        assert fanout.connection_count() == 0

    @pytest.mark.asyncio
    async def test_enqueue_error_survives_store_outage(self, order_service, processor, repository, fanout):
        async def enqueue_during_outage(*args, **kwargs):
            repository.fail = True
            raise QueueClosedError("closing")

        processor.queue.enqueue = AsyncMock(side_effect=enqueue_during_outage)
        transport = RecordingTransport()

        with pytest.raises(QueueClosedError):
            await order_service.submit({"tokenIn": "SOL", "tokenOut": "USDC", "amount": 1}, transport)

        assert fanout.connection_count() == 0
        assert len(processor.callbacks) == 0

    @pytest.mark.asyncio
    async def test_submission_metric(self, order_service, processor, metrics):
        processor.start()
        await order_service.submit({"tokenIn": "SOL", "tokenOut": "USDC", "amount": 2, "type": "limit"})
        assert metrics.registry.get_sample_value(
            "orders_submitted_total", {"order_type": "limit"}
        ) == 1


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_status_prefers_cache(self, order_service, repository, cache, make_order):
        order = await repository.create(make_order())
        cached = order.model_copy(update={"status": OrderStatus.BUILDING})
        await cache.set_active(cached)

        found = await order_service.get_status(order.id)

        assert found.status is OrderStatus.BUILDING

    @pytest.mark.asyncio
    async def test_get_status_falls_back_to_store(self, order_service, repository, make_order):
        order = await repository.create(make_order())
        await repository.update(order.id, status=OrderStatus.FAILED, error="boom")

        found = await order_service.get_status(order.id)

        assert found.status is OrderStatus.FAILED
        assert found.error == "boom"

    @pytest.mark.asyncio
    async def test_get_status_unknown_order(self, order_service):
        with pytest.raises(OrderNotFoundError):
            await order_service.get_status("order_missing")

    @pytest.mark.asyncio
    async def test_list_orders_defaults_to_confirmed(self, order_service, repository, make_order):
        confirmed = await repository.create(make_order())
        await repository.update(confirmed.id, status=OrderStatus.CONFIRMED)
        await repository.create(make_order())

        orders = await order_service.list_orders()

        assert [o.id for o in orders] == [confirmed.id]

    @pytest.mark.asyncio
    async def test_list_orders_honours_limit(self, order_service, repository, make_order):
        for _ in range(3):
            await repository.create(make_order())

        orders = await order_service.list_orders(status=OrderStatus.PENDING, limit=2)

        assert len(orders) == 2

    @pytest.mark.asyncio
    async def test_stats_shape(self, order_service, fanout, make_order):
        fanout.subscribe("order_a", RecordingTransport())
        fanout.subscribe("order_b", RecordingTransport())

        stats = await order_service.stats()

        assert stats["queue"] == {"waiting": 0, "active": 0, "completed": 0, "failed": 0}
        assert stats["websockets"]["connections"] == 2
        assert sorted(stats["websockets"]["activeOrders"]) == ["order_a", "order_b"]
