import threading
from typing import Awaitable, Callable, Dict, Optional

from core.schemas.orders import StatusMessage

StatusCallback = Callable[[StatusMessage], Awaitable[None]]


class StatusCallbackRegistry:
    """Lock-guarded order id -> status callback map"""

    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: Dict[str, StatusCallback] = {}

    def register(self, order_id: str, callback: StatusCallback) -> None:
        with self._lock:
            self._callbacks[order_id] = callback

    def get(self, order_id: str) -> Optional[StatusCallback]:
        with self._lock:
            return self._callbacks.get(order_id)

    def remove(self, order_id: str) -> bool:
        with self._lock:
            return self._callbacks.pop(order_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def __contains__(self, order_id: object) -> bool:
        with self._lock:
            return order_id in self._callbacks
