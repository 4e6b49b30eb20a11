"""
Pytest configuration and shared fixtures for order engine tests.
"""
from decimal import Decimal

import pytest
from prometheus_client import CollectorRegistry

from core.config.settings import Settings, QueueSettings, RoutingSettings, CacheSettings
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.queue import InProcessJobQueue, JobOptions, RetryConfig
from core.schemas.orders import Order, OrderType
from core.utils.ids import generate_order_id
from services.order_execution import OrderProcessor, OrderService
from services.order_store import ActiveOrderCache
from services.routing import RoutingEngine
from services.status_fanout import StatusFanout
from tests.mocks.order_engine_fakes import (
    FakeRedis,
    InMemoryOrderRepository,
    StaticLiquiditySource,
)


@pytest.fixture
def test_settings():
    """Test settings configuration."""
    return Settings(
        environment="testing",
        queue=QueueSettings(
            concurrency=5,
            max_attempts=3,
            backoff_base_seconds=0.01,
            stall_timeout_seconds=30.0,
            shutdown_timeout_seconds=1.0,
        ),
        routing=RoutingSettings(
            sources="raydium,meteora",
            simulate_latency=False,
            failure_rate=0.0,
            seed=42,
        ),
        cache=CacheSettings(active_order_ttl_seconds=3600),
    )


@pytest.fixture
def metrics():
    """Metrics on a private registry so tests never share counters."""
    return OrderPipelineMetrics(registry=CollectorRegistry())


@pytest.fixture
def repository():
    return InMemoryOrderRepository()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis, metrics):
    return ActiveOrderCache(fake_redis, ttl_seconds=3600, metrics=metrics)


@pytest.fixture
def fanout(metrics):
    return StatusFanout(metrics=metrics)


@pytest.fixture
def venues():
    return {
        "raydium": StaticLiquiditySource("raydium", price="100", fee="0.003"),
        "meteora": StaticLiquiditySource("meteora", price="99", fee="0.002"),
    }


@pytest.fixture
def routing_engine(venues, metrics):
    return RoutingEngine(venues, metrics=metrics)


@pytest.fixture
def fast_retry():
    return RetryConfig(base_delay=0.01)


@pytest.fixture
async def job_queue(metrics, fast_retry):
    queue = InProcessJobQueue(
        concurrency=5,
        default_options=JobOptions(attempts=3, backoff=fast_retry),
        stall_timeout=30.0,
        stall_check_interval=0.05,
        metrics=metrics,
    )
    yield queue
    await queue.shutdown(timeout=1.0)


@pytest.fixture
def processor(job_queue, routing_engine, repository, cache, fanout, metrics, fast_retry):
    return OrderProcessor(
        queue=job_queue,
        routing=routing_engine,
        repository=repository,
        cache=cache,
        fanout=fanout,
        metrics=metrics,
        max_attempts=3,
        retry_config=fast_retry,
        build_delay_ms=(0, 0),
    )


@pytest.fixture
def order_service(repository, cache, processor, fanout, metrics):
    return OrderService(repository, cache, processor, fanout, metrics=metrics)


@pytest.fixture
def make_order():
    """Build a PENDING order snapshot."""
    def _make(token_in="SOL", token_out="USDC", amount="100", order_type=OrderType.MARKET, order_id=None):
        return Order(
            id=order_id or generate_order_id(),
            type=order_type,
            token_in=token_in,
            token_out=token_out,
            amount=Decimal(amount),
        )
    return _make
