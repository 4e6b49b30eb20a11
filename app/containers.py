# Application DI container
from dependency_injector import containers, providers
import random
import redis.asyncio as redis
from prometheus_client import CollectorRegistry

from core.config.settings import Settings
from core.database.connection import DatabaseManager
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.queue import InProcessJobQueue, JobOptions, RetryConfig
from services.order_execution import OrderProcessor, OrderService
from services.order_store import ActiveOrderCache, OrderRepository
from services.routing import RoutingEngine, build_liquidity_sources
from services.status_fanout import StatusFanout


class AppContainer(containers.DeclarativeContainer):
    """Application dependency injection container"""

    # Configuration
    settings = providers.Singleton(Settings)

    # --- Observability: Prometheus ---
    # Shared registry used by the API /metrics endpoint
    prometheus_registry = providers.Singleton(CollectorRegistry)
    metrics = providers.Singleton(
        OrderPipelineMetrics,
        registry=prometheus_registry,
    )

    # Database with environment awareness
    db_manager = providers.Singleton(
        DatabaseManager,
        db_url=settings.provided.database.postgres_url,
        environment=settings.provided.environment,
        schema_management=settings.provided.database.schema_management
    )

    # Redis cache
    redis_client = providers.Singleton(
        redis.from_url,
        settings.provided.redis.url
    )

    # --- Order store ---
    order_repository = providers.Singleton(
        OrderRepository,
        db_manager=db_manager,
    )

    active_order_cache = providers.Singleton(
        ActiveOrderCache,
        redis_client=redis_client,
        ttl_seconds=settings.provided.cache.active_order_ttl_seconds,
        namespace=settings.provided.cache.namespace,
        metrics=metrics,
    )

    # --- Routing ---
    # One seeded RNG shared by the simulated venues and the build-delay simulation
    rng = providers.Singleton(random.Random, settings.provided.routing.seed)

    liquidity_sources = providers.Singleton(
        build_liquidity_sources,
        settings=settings,
        rng=rng,
    )

    routing_engine = providers.Singleton(
        RoutingEngine,
        sources=liquidity_sources,
        metrics=metrics,
    )

    # --- Fanout ---
    status_fanout = providers.Singleton(
        StatusFanout,
        metrics=metrics,
    )

    # --- Queue ---
    retry_config = providers.Singleton(
        RetryConfig,
        base_delay=settings.provided.queue.backoff_base_seconds,
        max_delay=settings.provided.queue.backoff_max_seconds,
        jitter=settings.provided.queue.backoff_jitter,
    )

    job_queue = providers.Singleton(
        InProcessJobQueue,
        name=settings.provided.queue.name,
        concurrency=settings.provided.queue.concurrency,
        default_options=providers.Factory(
            JobOptions,
            attempts=settings.provided.queue.max_attempts,
            backoff=retry_config,
        ),
        stall_timeout=settings.provided.queue.stall_timeout_seconds,
        stall_check_interval=settings.provided.queue.stall_check_interval_seconds,
        max_stalled_count=settings.provided.queue.max_stalled_count,
        remove_on_complete=settings.provided.queue.remove_on_complete,
        remove_on_fail=settings.provided.queue.remove_on_fail,
        metrics=metrics,
    )

    # --- Order execution ---
    order_processor = providers.Singleton(
        OrderProcessor,
        queue=job_queue,
        routing=routing_engine,
        repository=order_repository,
        cache=active_order_cache,
        fanout=status_fanout,
        metrics=metrics,
        max_attempts=settings.provided.queue.max_attempts,
        retry_config=retry_config,
        build_delay_ms=providers.Callable(
            lambda routing: (routing.build_delay_min_ms, routing.build_delay_max_ms)
            if routing.simulate_latency else (0, 0),
            settings.provided.routing,
        ),
        rng=rng,
    )

    order_service = providers.Singleton(
        OrderService,
        repository=order_repository,
        cache=active_order_cache,
        processor=order_processor,
        fanout=status_fanout,
        metrics=metrics,
    )
