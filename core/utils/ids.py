"""
Centralized ID generation.

Order ids carry a millisecond timestamp prefix so they sort roughly by
creation time, followed by a random suffix for uniqueness across processes.
"""

from __future__ import annotations

import time
from uuid import uuid4


def generate_order_id() -> str:
    """Generate a globally unique order id: ``order_<ms>_<8 hex>``."""
    ts_ms = int(time.time() * 1000)
    return f"order_{ts_ms}_{uuid4().hex[:8]}"


def generate_job_id() -> str:
    """Generate an opaque job id for jobs not keyed by an order."""
    return f"job_{uuid4().hex}"
