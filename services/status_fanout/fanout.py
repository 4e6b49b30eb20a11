"""
Per-order status fanout.

Each order id maps to at most one transport; the latest subscriber replaces
any earlier one. Delivery failures evict the failing transport and are
logged, never raised to the publisher.
"""

import asyncio
import json
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from core.logging import get_api_logger_safe
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.schemas.orders import StatusMessage

from .transports import Transport

StatusCallback = Callable[[StatusMessage], Awaitable[None]]
Message = Union[StatusMessage, Dict[str, Any], str]


def _serialize(message: Message) -> str:
    if isinstance(message, str):
        return message
    if isinstance(message, StatusMessage):
        return message.to_json()
    return json.dumps(message, default=str)


class StatusFanout:
    """Single-slot registry of order id -> transport"""

    def __init__(self, metrics: Optional[OrderPipelineMetrics] = None):
        # Guards _connections only; never held across an await
        self._lock = threading.Lock()
        self._connections: Dict[str, Transport] = {}
        self.metrics = metrics
        self.logger = get_api_logger_safe("fanout")
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, order_id: str, transport: Transport) -> None:
        with self._lock:
            previous = self._connections.get(order_id)
            self._connections[order_id] = transport
            total = len(self._connections)

        if previous is not None and previous is not transport:
            self.logger.info("Subscriber replaced", order_id=order_id)
        self.logger.info("Subscriber registered", order_id=order_id, total_connections=total)
        self._update_gauge(total)

    def unsubscribe(self, order_id: str, transport: Optional[Transport] = None) -> bool:
        """Remove the registration; with `transport`, only if it is still the registered one."""
        with self._lock:
            current = self._connections.get(order_id)
            if current is None or (transport is not None and current is not transport):
                return False
            del self._connections[order_id]
            total = len(self._connections)

        self.logger.debug("Subscriber removed", order_id=order_id, total_connections=total)
        self._update_gauge(total)
        return True

    async def publish(self, order_id: str, message: Message) -> bool:
        """Send to the order's subscriber. Returns True when delivered."""
        with self._lock:
            transport = self._connections.get(order_id)
        if transport is None:
            return False

        if not transport.is_open():
            self.unsubscribe(order_id, transport)
            self._record_delivery(False)
            return False

        try:
            await transport.send(_serialize(message))
        except Exception as e:
            self.logger.warning("Failed to deliver status message", order_id=order_id, error=str(e))
            self.unsubscribe(order_id, transport)
            self._record_delivery(False)
            return False

        self._record_delivery(True)
        return True

    async def broadcast_all(self, message: Message) -> int:
        """Deliver to every open subscriber; returns the delivered count."""
        payload = _serialize(message)
        with self._lock:
            snapshot = list(self._connections.items())

        delivered = 0
        for order_id, transport in snapshot:
            if not transport.is_open():
                self.unsubscribe(order_id, transport)
                continue
            try:
                await transport.send(payload)
                delivered += 1
            except Exception as e:
                self.logger.warning("Failed to broadcast to subscriber", order_id=order_id, error=str(e))
                self.unsubscribe(order_id, transport)
        return delivered

    def cleanup(self) -> int:
        """Drop registrations whose transport has closed; returns how many were removed."""
        with self._lock:
            closed = [oid for oid, t in self._connections.items() if not t.is_open()]
            for order_id in closed:
                del self._connections[order_id]
            total = len(self._connections)

        if closed:
            self.logger.info("Closed subscribers cleaned up", removed=len(closed), total_connections=total)
            self._update_gauge(total)
        return len(closed)

    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def active_order_ids(self) -> List[str]:
        with self._lock:
            return list(self._connections)

    def create_status_callback(self, order_id: str) -> StatusCallback:
        async def callback(message: StatusMessage) -> None:
            await self.publish(order_id, message)
        return callback

    def start_cleanup_loop(self, interval: float = 30.0) -> asyncio.Task:
        """Start the periodic sweeper"""
        async def sweep():
            while True:
                await asyncio.sleep(interval)
                try:
                    self.cleanup()
                except Exception as e:
                    self.logger.error("Fanout cleanup error", error=str(e))

        task = asyncio.create_task(sweep(), name="fanout-cleanup")
        self._tasks.add(task)
        return task

    async def stop(self) -> None:
        """Stop all background tasks"""
        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()

    def _update_gauge(self, total: int) -> None:
        if self.metrics:
            self.metrics.set_connections(total)

    def _record_delivery(self, delivered: bool) -> None:
        if self.metrics:
            self.metrics.record_status_delivery(delivered)
