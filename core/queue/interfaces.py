"""
Job queue abstraction.

The order pipeline only depends on this surface, so an in-process asyncio
queue or an external broker can back it. Retry mechanics (attempt counting,
backoff timing, stall requeue) live in the queue; what a permanent failure
means for an order lives with the registered listener.
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from core.utils.exceptions import PermanentFailure


class JobState(str, Enum):
    WAITING = "waiting"
    DELAYED = "delayed"      # waiting out a retry backoff
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RetryConfig:
    """Exponential backoff between attempts"""
    base_delay: float = 2.0
    max_delay: Optional[float] = None
    exponential_base: float = 2.0
    jitter: bool = False

    def get_delay(self, attempts_made: int) -> float:
        """Delay before the next attempt, after `attempts_made` failed attempts (1-based)."""
        delay = self.base_delay * (self.exponential_base ** max(attempts_made - 1, 0))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)

        if self.jitter:
            # Add jitter: 50% to 100% of calculated delay
            delay = delay * (0.5 + 0.5 * random.random())

        return delay


@dataclass
class JobOptions:
    job_id: Optional[str] = None
    attempts: int = 3
    backoff: RetryConfig = field(default_factory=RetryConfig)


@dataclass
class Job:
    id: str
    name: str
    data: Dict[str, Any]
    options: JobOptions
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    stalled_count: int = 0
    progress: int = 0
    failed_reason: Optional[str] = None
    return_value: Any = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    last_heartbeat: float = field(default_factory=time.monotonic)

    @property
    def max_attempts(self) -> int:
        return self.options.attempts

    def is_final_attempt(self) -> bool:
        """True while the current attempt is the last one the budget allows."""
        return self.attempts_made + 1 >= self.max_attempts

    async def update_progress(self, progress: int) -> None:
        """Record progress; doubles as the heartbeat checked by stall detection."""
        self.progress = max(0, min(100, int(progress)))
        self.last_heartbeat = time.monotonic()

    def touch(self) -> None:
        self.last_heartbeat = time.monotonic()


JobProcessor = Callable[[Job], Awaitable[Any]]
FailedListener = Callable[[Job, PermanentFailure], Awaitable[None]]
QueueStats = Dict[str, int]


class JobQueue(ABC):
    """Durable-queue contract consumed by the order processor."""

    @abstractmethod
    async def enqueue(self, name: str, data: Dict[str, Any],
                      options: Optional[JobOptions] = None) -> Job:
        """Queue a job; returns once the job is accepted."""
        ...

    @abstractmethod
    def register_processor(self, processor: JobProcessor) -> None:
        """Start workers that run `processor` for each job."""
        ...

    @abstractmethod
    def on_failed(self, listener: FailedListener) -> None:
        """Called exactly once per job that fails permanently."""
        ...

    @abstractmethod
    async def stats(self) -> QueueStats:
        """Counts keyed waiting, active, completed, failed."""
        ...

    @abstractmethod
    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop accepting work, drain or abandon in-flight jobs, release workers."""
        ...
