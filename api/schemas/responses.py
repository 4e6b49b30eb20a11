from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from core.schemas.orders import Order, OrderEngineBaseModel, OrderStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExecuteOrderResponse(OrderEngineBaseModel):
    """Returned immediately after an order is accepted"""
    order_id: str
    status: str = "accepted"
    message: str = "Order submitted for execution"
    websocket_url: str


class OrderListResponse(OrderEngineBaseModel):
    orders: List[Order]
    count: int
    status: OrderStatus
    timestamp: datetime = Field(default_factory=_now)


class WebSocketStats(OrderEngineBaseModel):
    connections: int
    active_orders: List[str]


class StatsResponse(OrderEngineBaseModel):
    queue: Dict[str, int]
    websockets: WebSocketStats
    timestamp: datetime = Field(default_factory=_now)


class ErrorResponse(BaseModel):
    """Error response model"""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=_now)
