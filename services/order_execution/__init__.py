"""
Order Execution Service

Drives submitted orders through routing, building and submission to a
terminal status, publishing each transition as it happens.
"""

from .callbacks import StatusCallbackRegistry
from .processor import OrderProcessor
from .service import OrderService

__all__ = [
    "OrderProcessor",
    "OrderService",
    "StatusCallbackRegistry",
]
