"""
Job queue: the durable work queue behind order execution.
"""

from .interfaces import Job, JobOptions, JobProcessor, JobQueue, JobState, QueueStats, RetryConfig
from .in_process import InProcessJobQueue

__all__ = [
    "Job",
    "JobOptions",
    "JobProcessor",
    "JobQueue",
    "JobState",
    "QueueStats",
    "RetryConfig",
    "InProcessJobQueue",
]
