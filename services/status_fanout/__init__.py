"""
Status Fanout Service

Streams each order's status transitions to the single observer attached to it.
"""

from .fanout import StatusFanout, StatusCallback
from .transports import Transport, WebSocketTransport

__all__ = [
    "StatusFanout",
    "StatusCallback",
    "Transport",
    "WebSocketTransport",
]
