from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.logging import get_trading_logger_safe
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.schemas.orders import Order, OrderRequest, OrderStatus
from core.utils.exceptions import OrderNotFoundError, ValidationError
from core.utils.ids import generate_order_id
from services.order_store import ActiveOrderCache, OrderRepository
from services.status_fanout import StatusFanout, Transport

from .processor import OrderProcessor


def _to_validation_error(error: PydanticValidationError, payload: Any) -> ValidationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "body"
    value = payload.get(field) if isinstance(payload, Mapping) else None
    return ValidationError(f"Invalid order request: {first.get('msg')}", field=field, value=value)


class OrderService:
    """Inbound facade: submission, lookups and runtime stats."""

    def __init__(
        self,
        repository: OrderRepository,
        cache: ActiveOrderCache,
        processor: OrderProcessor,
        fanout: StatusFanout,
        metrics: Optional[OrderPipelineMetrics] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.processor = processor
        self.fanout = fanout
        self.metrics = metrics
        self.logger = get_trading_logger_safe("order_service")

    async def submit(self, request: Union[OrderRequest, Mapping[str, Any]],
                     transport: Optional[Transport] = None) -> str:
        """Validate, persist and queue an order. Returns the new order id."""
        if not isinstance(request, OrderRequest):
            try:
                request = OrderRequest.model_validate(request)
            except PydanticValidationError as e:
                raise _to_validation_error(e, request) from e

        order = Order(
            id=generate_order_id(),
            type=request.type,
            token_in=request.token_in,
            token_out=request.token_out,
            amount=request.amount,
        )
        order = await self.repository.create(order)

        if transport is not None:
            self.fanout.subscribe(order.id, transport)

        try:
            await self.processor.add_order(order, self.fanout.create_status_callback(order.id))
        except Exception as e:
            self.fanout.unsubscribe(order.id, transport)
            try:
                await self.repository.update(order.id, status=OrderStatus.FAILED,
                                             error=f"Failed to queue order: {e}")
            except Exception as update_error:
                self.logger.error("Failed to mark unqueued order as failed", order_id=order.id,
                                  error=str(update_error))
            raise

        if self.metrics:
            self.metrics.record_order_submitted(order.type.value)
        self.logger.info("Order submitted", order_id=order.id, order_type=order.type.value,
                         pair=order.pair, amount=float(order.amount))
        return order.id

    async def get_status(self, order_id: str) -> Order:
        """Cached snapshot for in-flight orders, store record otherwise."""
        order = await self.cache.get_active(order_id)
        if order is not None:
            return order

        order = await self.repository.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list_orders(self, status: OrderStatus = OrderStatus.CONFIRMED,
                          limit: int = 50) -> List[Order]:
        return await self.repository.find_by_status(status, limit=limit)

    async def stats(self) -> Dict[str, Any]:
        return {
            "queue": await self.processor.stats(),
            "websockets": {
                "connections": self.fanout.connection_count(),
                "activeOrders": self.fanout.active_order_ids(),
            },
        }
