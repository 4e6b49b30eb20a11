"""
Prometheus metrics for the order execution pipeline
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
from typing import Optional
import time


class OrderPipelineMetrics:
    """Counters, gauges and histograms for queue, routing and fanout activity"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Order lifecycle
        self.orders_submitted = Counter(
            'orders_submitted_total',
            'Total orders accepted for execution',
            ['order_type'],
            registry=self.registry
        )

        self.status_transitions = Counter(
            'order_status_transitions_total',
            'Order status transitions persisted',
            ['status'],
            registry=self.registry
        )

        self.execution_latency = Histogram(
            'order_execution_latency_seconds',
            'Time from submission to terminal status',
            ['status'],
            buckets=[0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 20.0, 30.0, 60.0],
            registry=self.registry
        )

        # Queue metrics
        self.jobs_total = Counter(
            'queue_jobs_total',
            'Job outcomes by queue',
            ['queue', 'outcome'],
            registry=self.registry
        )

        self.active_jobs = Gauge(
            'queue_active_jobs',
            'Jobs currently being processed',
            ['queue'],
            registry=self.registry
        )

        self.job_duration = Histogram(
            'queue_job_attempt_duration_seconds',
            'Duration of a single job attempt',
            ['queue'],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry
        )

        # Routing metrics
        self.routes_selected = Counter(
            'routing_selected_total',
            'Winning liquidity source per routed order',
            ['source'],
            registry=self.registry
        )

        self.quote_failures = Counter(
            'routing_quote_failures_total',
            'Quote requests that failed',
            ['source'],
            registry=self.registry
        )

        # Fanout metrics
        self.websocket_connections = Gauge(
            'fanout_connections',
            'Registered status subscribers',
            registry=self.registry
        )

        self.status_messages = Counter(
            'fanout_status_messages_total',
            'Status messages by delivery outcome',
            ['outcome'],
            registry=self.registry
        )

        # Cache metrics
        self.cache_hits = Counter(
            'cache_hits_total',
            'Total cache hits',
            ['cache_type'],
            registry=self.registry
        )

        self.cache_misses = Counter(
            'cache_misses_total',
            'Total cache misses',
            ['cache_type'],
            registry=self.registry
        )

        # Error metrics
        self.errors_total = Counter(
            'order_engine_errors_total',
            'Total errors by component',
            ['component', 'error_type'],
            registry=self.registry
        )

        self.last_activity_timestamp = Gauge(
            'order_engine_last_activity_timestamp_unix',
            'Last activity timestamp (unix seconds) by stage',
            ['stage'],
            registry=self.registry
        )

    def record_order_submitted(self, order_type: str):
        """Record an accepted order"""
        self.orders_submitted.labels(order_type=order_type).inc()

    def record_status_transition(self, status: str):
        self.status_transitions.labels(status=status).inc()
        self.last_activity_timestamp.labels(stage=status).set(time.time())

    def observe_execution_latency(self, status: str, seconds: float):
        self.execution_latency.labels(status=status).observe(max(0.0, seconds))

    def record_job_completed(self, queue: str):
        self.jobs_total.labels(queue=queue, outcome="completed").inc()

    def record_job_failed(self, queue: str):
        self.jobs_total.labels(queue=queue, outcome="failed").inc()

    def record_job_retried(self, queue: str):
        self.jobs_total.labels(queue=queue, outcome="retried").inc()

    def record_job_stalled(self, queue: str):
        self.jobs_total.labels(queue=queue, outcome="stalled").inc()

    def set_active_jobs(self, queue: str, count: int):
        self.active_jobs.labels(queue=queue).set(count)

    def observe_job_duration(self, queue: str, seconds: float):
        self.job_duration.labels(queue=queue).observe(seconds)

    def record_route_selected(self, source: str):
        """Record the winning source for a routed order"""
        self.routes_selected.labels(source=source).inc()

    def record_quote_failure(self, source: str):
        self.quote_failures.labels(source=source).inc()

    def set_connections(self, count: int):
        self.websocket_connections.set(count)

    def record_status_delivery(self, delivered: bool):
        self.status_messages.labels(outcome="delivered" if delivered else "dropped").inc()

    def record_cache_hit(self, cache_type: str):
        """Record cache hit"""
        self.cache_hits.labels(cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str):
        """Record cache miss"""
        self.cache_misses.labels(cache_type=cache_type).inc()

    def record_error(self, component: str, error_type: str):
        """Record error by component"""
        self.errors_total.labels(component=component, error_type=error_type).inc()

    def export(self) -> bytes:
        """Render the registry in Prometheus text exposition format"""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

