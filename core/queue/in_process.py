"""
In-process job queue backed by asyncio.

A fixed pool of worker tasks pulls jobs from an asyncio.Queue. Each job
attempt runs in its own task so the stall detector can cancel a stuck
attempt and requeue the job without killing the worker.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from core.logging import get_logger, get_error_logger_safe
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.utils.exceptions import (
    DuplicateJobError,
    JobStalledError,
    PermanentFailure,
    QueueClosedError,
    create_error_context,
    is_retryable_error,
)
from core.utils.ids import generate_job_id

from .interfaces import (
    FailedListener,
    Job,
    JobOptions,
    JobProcessor,
    JobQueue,
    JobState,
    QueueStats,
)


class InProcessJobQueue(JobQueue):
    """Bounded worker pool with retry/backoff and stall detection."""

    def __init__(
        self,
        name: str = "order-execution",
        concurrency: int = 5,
        default_options: Optional[JobOptions] = None,
        stall_timeout: float = 30.0,
        stall_check_interval: float = 5.0,
        max_stalled_count: int = 3,
        remove_on_complete: int = 100,
        remove_on_fail: int = 50,
        metrics: Optional[OrderPipelineMetrics] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.name = name
        self.concurrency = concurrency
        self.default_options = default_options or JobOptions()
        self.stall_timeout = stall_timeout
        self.stall_check_interval = stall_check_interval
        self.max_stalled_count = max_stalled_count
        self.metrics = metrics
        self.logger = get_logger(__name__, component="queue").bind(queue=name)
        self.error_logger = get_error_logger_safe("queue_errors")

        self._pending: "asyncio.Queue[Job]" = asyncio.Queue()
        self._jobs: Dict[str, Job] = {}                 # waiting, delayed and active jobs
        self._attempts: Dict[str, asyncio.Task] = {}    # job id -> running attempt
        self._stall_requested: set[str] = set()
        self._abandoned: set[str] = set()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._completed: Deque[Job] = deque(maxlen=remove_on_complete)
        self._failed: Deque[Job] = deque(maxlen=remove_on_fail)
        self._completed_count = 0
        self._failed_count = 0

        self._processor: Optional[JobProcessor] = None
        self._failed_listeners: List[FailedListener] = []
        self._workers: List[asyncio.Task] = []
        self._stall_task: Optional[asyncio.Task] = None
        self._closing = False

    # ------------------------------------------------------------------ API

    async def enqueue(self, name: str, data: Dict[str, Any],
                      options: Optional[JobOptions] = None) -> Job:
        if self._closing:
            raise QueueClosedError(f"Queue {self.name} is shutting down")

        options = options or self.default_options
        job_id = options.job_id or generate_job_id()
        if job_id in self._jobs:
            raise DuplicateJobError(job_id)

        job = Job(id=job_id, name=name, data=data, options=options)
        self._jobs[job_id] = job
        self._pending.put_nowait(job)
        self.logger.debug("Job enqueued", job_id=job_id, job_name=name)
        return job

    def register_processor(self, processor: JobProcessor) -> None:
        if self._processor is not None:
            raise RuntimeError(f"Queue {self.name} already has a processor")
        if self._closing:
            raise QueueClosedError(f"Queue {self.name} is shutting down")

        self._processor = processor
        for worker_id in range(self.concurrency):
            self._workers.append(
                asyncio.create_task(self._worker_loop(worker_id), name=f"{self.name}-worker-{worker_id}")
            )
        self._stall_task = asyncio.create_task(self._stall_detector(), name=f"{self.name}-stall-detector")
        self.logger.info("Worker pool started", concurrency=self.concurrency)

    def on_failed(self, listener: FailedListener) -> None:
        self._failed_listeners.append(listener)

    async def stats(self) -> QueueStats:
        waiting = active = 0
        for job in self._jobs.values():
            if job.state is JobState.ACTIVE:
                active += 1
            else:
                waiting += 1
        return {
            "waiting": waiting,
            "active": active,
            "completed": self._completed_count,
            "failed": self._failed_count,
        }

    def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is not None:
            return job
        for finished in (*self._completed, *self._failed):
            if finished.id == job_id:
                return finished
        return None

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        if self._closing:
            return
        self._closing = True
        self.logger.info("Queue shutting down", in_flight=len(self._attempts))

        if self._stall_task:
            self._stall_task.cancel()
            await asyncio.gather(self._stall_task, return_exceptions=True)

        in_flight = list(self._attempts.items())
        if in_flight:
            _, still_running = await asyncio.wait([task for _, task in in_flight], timeout=timeout)
            for job_id, task in in_flight:
                if task in still_running:
                    self._abandoned.add(job_id)
                    task.cancel()
            if still_running:
                self.logger.warning("Abandoned in-flight jobs at shutdown", count=len(still_running))
                await asyncio.gather(*still_running, return_exceptions=True)

        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

        self.logger.info("Queue shutdown complete")

    # -------------------------------------------------------------- workers

    async def _worker_loop(self, worker_id: int) -> None:
        while True:
            job = await self._pending.get()
            if self._closing:
                # Leave it queued; shutdown does not start new work
                self._pending.put_nowait(job)
                return
            if job.state is not JobState.WAITING:
                continue
            await self._run_job(job, worker_id)

    async def _run_job(self, job: Job, worker_id: int) -> None:
        job.state = JobState.ACTIVE
        job.processed_at = datetime.now(timezone.utc)
        job.touch()
        if self.metrics:
            self.metrics.set_active_jobs(self.name, self._active_count())

        started = time.perf_counter()
        attempt = asyncio.create_task(self._processor(job), name=f"{self.name}-job-{job.id}")
        self._attempts[job.id] = attempt
        try:
            result = await attempt
        except asyncio.CancelledError:
            if job.id in self._stall_requested:
                self._stall_requested.discard(job.id)
                await self._handle_stalled(job)
            elif job.id in self._abandoned:
                self._abandoned.discard(job.id)
                # Unfinished work counts as waiting once the queue is closed
                job.state = JobState.WAITING
                self.logger.warning("Job abandoned", job_id=job.id, attempts_made=job.attempts_made)
            else:
                raise
        except Exception as error:
            await self._handle_failure(job, error)
        else:
            self._handle_completed(job, result)
        finally:
            self._attempts.pop(job.id, None)
            if self.metrics:
                self.metrics.observe_job_duration(self.name, time.perf_counter() - started)
                self.metrics.set_active_jobs(self.name, self._active_count())

    def _active_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.state is JobState.ACTIVE)

    def _handle_completed(self, job: Job, result: Any) -> None:
        job.state = JobState.COMPLETED
        job.return_value = result
        job.progress = 100
        job.finished_at = datetime.now(timezone.utc)
        self._jobs.pop(job.id, None)
        self._completed.append(job)
        self._completed_count += 1
        if self.metrics:
            self.metrics.record_job_completed(self.name)
        self.logger.info("Job completed", job_id=job.id, attempts_made=job.attempts_made + 1)

    async def _handle_failure(self, job: Job, error: Exception) -> None:
        job.attempts_made += 1
        job.failed_reason = str(error)

        if is_retryable_error(error) and job.attempts_made < job.max_attempts:
            delay = job.options.backoff.get_delay(job.attempts_made)
            job.state = JobState.DELAYED
            loop = asyncio.get_running_loop()
            self._timers[job.id] = loop.call_later(delay, self._promote_delayed, job)
            if self.metrics:
                self.metrics.record_job_retried(self.name)
            self.logger.warning(
                "Job attempt failed, retrying",
                job_id=job.id,
                attempts_made=job.attempts_made,
                max_attempts=job.max_attempts,
                retry_in_seconds=delay,
                error=str(error),
            )
            return

        await self._fail_permanently(job, error)

    def _promote_delayed(self, job: Job) -> None:
        self._timers.pop(job.id, None)
        if self._closing or job.state is not JobState.DELAYED:
            return
        job.state = JobState.WAITING
        self._pending.put_nowait(job)

    async def _handle_stalled(self, job: Job) -> None:
        job.stalled_count += 1
        if self.metrics:
            self.metrics.record_job_stalled(self.name)

        if job.stalled_count > self.max_stalled_count:
            await self._fail_permanently(job, JobStalledError(job.id, self.max_stalled_count))
            return

        self.logger.warning("Job stalled, requeued", job_id=job.id, stalled_count=job.stalled_count)
        job.state = JobState.WAITING
        self._pending.put_nowait(job)

    async def _fail_permanently(self, job: Job, error: BaseException) -> None:
        job.state = JobState.FAILED
        job.failed_reason = str(error)
        job.finished_at = datetime.now(timezone.utc)
        self._jobs.pop(job.id, None)
        self._failed.append(job)
        self._failed_count += 1
        if self.metrics:
            self.metrics.record_job_failed(self.name)

        failure = error if isinstance(error, PermanentFailure) else PermanentFailure(
            job.id, job.attempts_made, error
        )
        self.error_logger.error(
            "Job failed permanently",
            job_id=job.id,
            **create_error_context(error, "job_processing", {"attempts_made": job.attempts_made}),
        )

        for listener in self._failed_listeners:
            try:
                await listener(job, failure)
            except Exception as listener_error:
                self.error_logger.error(
                    "Failed-job listener raised",
                    job_id=job.id,
                    error=str(listener_error),
                    exc_info=True,
                )

    # ---------------------------------------------------------------- stalls

    async def _stall_detector(self) -> None:
        while True:
            await asyncio.sleep(self.stall_check_interval)
            self.check_stalled()

    def check_stalled(self) -> int:
        """Cancel attempts whose job has not reported progress within the stall window."""
        now = time.monotonic()
        stalled = 0
        for job_id, attempt in list(self._attempts.items()):
            job = self._jobs.get(job_id)
            if job is None or attempt.done() or job_id in self._stall_requested:
                continue
            if now - job.last_heartbeat > self.stall_timeout:
                self._stall_requested.add(job_id)
                attempt.cancel()
                stalled += 1
        return stalled
