from abc import ABC, abstractmethod

from fastapi import WebSocket
from starlette.websockets import WebSocketState


class Transport(ABC):
    """One observer channel for an order's status stream."""

    @abstractmethod
    async def send(self, payload: str) -> None:
        pass

    @abstractmethod
    def is_open(self) -> bool:
        pass


class WebSocketTransport(Transport):
    """Transport over an accepted FastAPI WebSocket"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, payload: str) -> None:
        await self.websocket.send_text(payload)

    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def __repr__(self) -> str:
        client = getattr(self.websocket, "client", None)
        return f"<WebSocketTransport client={client}>"
