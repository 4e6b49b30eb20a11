from fastapi import Depends
from dependency_injector.wiring import inject, Provide

from app.containers import AppContainer
from services.order_execution import OrderService
from services.status_fanout import StatusFanout


@inject
def get_order_service(
    order_service: OrderService = Depends(Provide[AppContainer.order_service])
) -> OrderService:
    return order_service


@inject
def get_status_fanout(
    fanout: StatusFanout = Depends(Provide[AppContainer.status_fanout])
) -> StatusFanout:
    return fanout
