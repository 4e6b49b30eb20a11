"""
Order execution pipeline.

Each queued job drives one order through ROUTING -> BUILDING -> SUBMITTED ->
CONFIRMED. Every transition is persisted, mirrored into the active-order
cache and published to the order's status callback. Retries resume from the
furthest stage already reached, so an observer never sees a status repeat or
move backwards, and a swap that already executed is never executed again.
"""

import asyncio
import random
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from core.logging import bind_order_context, get_error_logger_safe, get_trading_logger_safe
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.queue import Job, JobOptions, JobQueue, QueueStats, RetryConfig
from core.schemas.orders import Order, OrderStatus, StatusMessage, SwapResult
from core.utils.exceptions import (
    CacheUnavailableError,
    InvalidTransitionError,
    OrderNotFoundError,
    PermanentFailure,
)
from services.order_store import ActiveOrderCache, OrderRepository
from services.routing import RoutingEngine
from services.status_fanout import StatusFanout

from .callbacks import StatusCallback, StatusCallbackRegistry

JOB_NAME = "execute-order"


class OrderProcessor:
    """Owns order status transitions and the queue worker that performs them."""

    def __init__(
        self,
        queue: JobQueue,
        routing: RoutingEngine,
        repository: OrderRepository,
        cache: ActiveOrderCache,
        fanout: Optional[StatusFanout] = None,
        metrics: Optional[OrderPipelineMetrics] = None,
        max_attempts: int = 3,
        retry_config: Optional[RetryConfig] = None,
        build_delay_ms: Tuple[int, int] = (500, 1000),
        rng: Optional[random.Random] = None,
    ):
        self.queue = queue
        self.routing = routing
        self.repository = repository
        self.cache = cache
        self.fanout = fanout
        self.metrics = metrics
        self.max_attempts = max_attempts
        self.retry_config = retry_config or RetryConfig()
        self.build_delay_ms = build_delay_ms
        self.rng = rng or random.Random()
        self.callbacks = StatusCallbackRegistry()
        self.logger = get_trading_logger_safe("order_processor")
        self.error_logger = get_error_logger_safe("order_processor")
        self._started = False

    def start(self) -> None:
        """Register the worker and the permanent-failure listener with the queue."""
        if self._started:
            return
        self.queue.on_failed(self._handle_permanent_failure)
        self.queue.register_processor(self._process_job)
        self._started = True
        self.logger.info("Order processor started")

    async def add_order(self, order: Order, status_callback: Optional[StatusCallback] = None) -> Job:
        """Queue an order for execution; PENDING is published before the job is queued."""
        if status_callback is not None:
            self.callbacks.register(order.id, status_callback)

        try:
            await self.cache.set_active(order)
            await self._publish(order.id, OrderStatus.PENDING)
            job = await self.queue.enqueue(
                JOB_NAME,
                {"order": order.model_dump(mode="json"), "status": OrderStatus.PENDING.value},
                JobOptions(job_id=order.id, attempts=self.max_attempts, backoff=self.retry_config),
            )
        except Exception:
            self.callbacks.remove(order.id)
            await self._evict_cache(order.id)
            raise

        self.logger.info("Order queued", order_id=order.id, pair=order.pair, amount=float(order.amount))
        return job

    async def stats(self) -> QueueStats:
        return await self.queue.stats()

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        await self.queue.shutdown(timeout)
        self.logger.info("Order processor shutdown complete")

    # ------------------------------------------------------------ pipeline

    async def _process_job(self, job: Job) -> Dict[str, Any]:
        order = Order.model_validate(job.data["order"])
        log = bind_order_context(self.logger, order.id, attempt=job.attempts_made + 1)
        await job.update_progress(10)

        swap_record = job.data.get("swap")
        if swap_record is None:
            order = await self._transition(job, order, OrderStatus.ROUTING, 30)
            route = await self.routing.get_best_quote(order.token_in, order.token_out, order.amount)
            log.info("Best route found", source=route.source, price=float(route.quote.price))

            order = await self._transition(job, order, OrderStatus.BUILDING, 50,
                                           selected_route=route.source)
            await self._simulate_build()

            order = await self._transition(job, order, OrderStatus.SUBMITTED, 70)
            swap = await self.routing.execute_swap(
                route.source, order.token_in, order.token_out, order.amount, route.quote.price
            )
            source = route.source
            # Recorded before anything else can fail so a retry never swaps twice
            job.data["swap"] = {"source": source, "result": swap.model_dump(mode="json")}
            await job.update_progress(90)
        else:
            source = swap_record["source"]
            swap = SwapResult.model_validate(swap_record["result"])
            log.info("Reusing swap from earlier attempt", tx_hash=swap.tx_hash)

        order = await self._transition(
            job, order, OrderStatus.CONFIRMED, 100,
            tx_hash=swap.tx_hash,
            executed_price=swap.executed_price,
            selected_route=source,
        )
        log.info("Order confirmed", tx_hash=swap.tx_hash, executed_price=float(swap.executed_price))
        return {"orderId": order.id, "txHash": swap.tx_hash, "selectedRoute": source}

    async def _transition(self, job: Job, order: Order, status: OrderStatus, progress: int,
                          **fields: Any) -> Order:
        reached = OrderStatus(job.data.get("status", OrderStatus.PENDING.value))
        if status.rank <= reached.rank:
            # Already reached on an earlier attempt
            await job.update_progress(progress)
            return order
        if not reached.can_transition_to(status):
            raise InvalidTransitionError(order.id, reached.value, status.value)

        updated = await self.repository.update(order.id, status=status, **fields)
        if updated is None:
            raise OrderNotFoundError(order.id)
        await job.update_progress(progress)

        if status.is_terminal:
            await self._evict_cache(order.id)
        else:
            await self.cache.set_active(updated)

        await self._publish(order.id, status, fields)
        job.data["status"] = status.value
        self._record_transition(updated)

        if status.is_terminal:
            self._release(order.id)
        return updated

    async def _simulate_build(self) -> None:
        low, high = self.build_delay_ms
        if high <= 0:
            return
        await asyncio.sleep(self.rng.uniform(low, high) / 1000.0)

    # ------------------------------------------------------------- failure

    async def _handle_permanent_failure(self, job: Job, failure: PermanentFailure) -> None:
        """Mark the order FAILED once its job can no longer be retried."""
        order_id = job.id
        try:
            await self._mark_failed(order_id, failure)
        finally:
            self._release(order_id)

    async def _mark_failed(self, order_id: str, failure: PermanentFailure) -> None:
        current = await self.repository.find_by_id(order_id)
        if current is None:
            self.error_logger.error("Failed job references unknown order", order_id=order_id)
            return
        if current.status.is_terminal:
            return

        error = str(failure)
        updated = await self.repository.update(order_id, status=OrderStatus.FAILED, error=error)
        await self._evict_cache(order_id)
        await self._publish(order_id, OrderStatus.FAILED, {"error": error})
        if updated is not None:
            self._record_transition(updated)
        if self.metrics:
            self.metrics.record_error("order_processor", type(failure.last_error).__name__)

        self.error_logger.error(
            "Order failed",
            order_id=order_id,
            from_status=current.status.value,
            attempts_made=failure.attempts_made,
            error=error,
        )

    # ------------------------------------------------------------- helpers

    async def _publish(self, order_id: str, status: OrderStatus,
                       data: Optional[Dict[str, Any]] = None) -> None:
        callback = self.callbacks.get(order_id)
        if callback is None:
            return
        message = StatusMessage.for_transition(order_id, status, data)
        try:
            await callback(message)
        except Exception as e:
            self.logger.warning("Status callback raised", order_id=order_id,
                                status=status.value, error=str(e))

    def _release(self, order_id: str) -> None:
        self.callbacks.remove(order_id)
        if self.fanout is not None:
            self.fanout.unsubscribe(order_id)

    async def _evict_cache(self, order_id: str) -> None:
        try:
            await self.cache.remove_active(order_id)
        except CacheUnavailableError as e:
            # Entry still expires on its TTL
            self.logger.warning("Active order eviction failed", order_id=order_id, error=str(e))

    def _record_transition(self, order: Order) -> None:
        if not self.metrics:
            return
        self.metrics.record_status_transition(order.status.value)
        if order.status.is_terminal:
            created = order.created_at
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            elapsed = (datetime.now(timezone.utc) - created).total_seconds()
            self.metrics.observe_execution_latency(order.status.value, elapsed)
