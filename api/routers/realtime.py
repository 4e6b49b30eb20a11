from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from datetime import datetime, timezone

from api.dependencies import get_status_fanout
from core.logging import get_api_logger_safe
from services.status_fanout import StatusFanout, WebSocketTransport

router = APIRouter(tags=["Real-time"])
logger = get_api_logger_safe("websocket")


@router.websocket("/ws/{order_id}")
async def order_status_stream(
    websocket: WebSocket,
    order_id: str,
    fanout: StatusFanout = Depends(get_status_fanout),
):
    """Stream status transitions for one order; the latest connection wins"""
    await websocket.accept()
    transport = WebSocketTransport(websocket)

    try:
        await websocket.send_json({
            "type": "connected",
            "orderId": order_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        fanout.subscribe(order_id, transport)
        logger.info("WebSocket connection established", order_id=order_id)

        # Inbound frames are ignored; the socket stays open until the client leaves
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        fanout.unsubscribe(order_id, transport)
        logger.info("WebSocket connection closed", order_id=order_id)
