from fastapi import APIRouter, Body, Depends, Query, status
from typing import Any, Dict

from api.dependencies import get_order_service
from api.schemas.responses import ExecuteOrderResponse, OrderListResponse, StatsResponse
from core.schemas.orders import Order, OrderStatus
from services.order_execution import OrderService

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("/execute", status_code=status.HTTP_201_CREATED,
             response_model=ExecuteOrderResponse, response_model_by_alias=True)
async def execute_order(
    payload: Dict[str, Any] = Body(...),
    order_service: OrderService = Depends(get_order_service),
):
    """Accept an order for execution; progress streams over /ws/{orderId}"""
    order_id = await order_service.submit(payload)
    return ExecuteOrderResponse(order_id=order_id, websocket_url=f"/ws/{order_id}")


@router.get("/stats", response_model=StatsResponse, response_model_by_alias=True)
async def get_stats(order_service: OrderService = Depends(get_order_service)):
    """Queue counts and connected status subscribers"""
    return StatsResponse.model_validate(await order_service.stats())


@router.get("", response_model=OrderListResponse, response_model_by_alias=True,
            response_model_exclude_none=True)
async def list_orders(
    status_filter: OrderStatus = Query(OrderStatus.CONFIRMED, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    order_service: OrderService = Depends(get_order_service),
):
    """Recent orders in one status, newest first"""
    orders = await order_service.list_orders(status_filter, limit)
    return OrderListResponse(orders=orders, count=len(orders), status=status_filter)


@router.get("/{order_id}", response_model=Order, response_model_by_alias=True,
            response_model_exclude_none=True)
async def get_order(
    order_id: str,
    order_service: OrderService = Depends(get_order_service),
):
    return await order_service.get_status(order_id)
