"""
Monitoring components for the order execution engine
"""

from .prometheus_metrics import OrderPipelineMetrics

__all__ = [
    "OrderPipelineMetrics",
]
