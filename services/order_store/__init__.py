"""
Order Store

Durable order records (SQL) and the short-lived active-order cache (Redis).
"""

from .cache import ActiveOrderCache
from .repository import OrderRepository

__all__ = [
    "ActiveOrderCache",
    "OrderRepository",
]
