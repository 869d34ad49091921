"""
In-memory registry of extraction jobs.

Jobs live only in process memory: a restart loses them. Each job is created
pending, receives exactly one terminal write (completed or error) and is
evicted once its retention window has passed, whether or not anyone polled it.

Writes for different job ids may come from concurrently running background
tasks, so every mutation of the map happens under a lock. Each id has a
single writer, and reads go through ``get``.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from ..models import Job, JobStatus, UnifiedRow

logger = logging.getLogger(__name__)


class JobNotFoundError(KeyError):
    """Raised when a job id is unknown or already evicted."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job {self.job_id} not found"


class JobStateError(RuntimeError):
    """Raised on a second terminal write to the same job."""

    pass


class JobRegistry:
    """
    Thread-safe map of job id to Job with timed eviction.

    Expiry is tracked as a deadline per job. When an event loop is running,
    an eviction callback is also scheduled on it so memory is released even
    if the job is never read again; otherwise expired jobs are purged on the
    next access.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._jobs: dict[str, Job] = {}
        self._deadlines: dict[str, float] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._jobs)

    def create(self) -> str:
        """Allocate a new pending job and return its id."""
        job_id = str(uuid.uuid4())
        with self._lock:
            self._jobs[job_id] = Job(id=job_id)
        logger.info("Started job %s for PDF processing", job_id)
        return job_id

    def get(self, job_id: str) -> Job:
        """
        Look up a job.

        Raises:
            JobNotFoundError: If the id is unknown or the job has expired.
        """
        with self._lock:
            self._purge_expired()
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.model_copy(deep=True)

    def complete(self, job_id: str, rows: list[UnifiedRow]) -> None:
        """Record a successful result."""
        self._finish(job_id, JobStatus.COMPLETED, data=list(rows))
        logger.info("Job %s - Completed with %d rows", job_id, len(rows))

    def fail(self, job_id: str, reason: str) -> None:
        """Record a failure."""
        self._finish(job_id, JobStatus.ERROR, error=reason)
        logger.error("Job %s - Failed: %s", job_id, reason)

    def _finish(self, job_id: str, status: JobStatus, **changes) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.is_terminal:
                raise JobStateError(
                    f"Job {job_id} already {job.status.value}; refusing to set {status.value}"
                )
            self._jobs[job_id] = job.model_copy(
                update={
                    "status": status,
                    "finished_at": datetime.now(timezone.utc),
                    **changes,
                }
            )

    def schedule_eviction(self, job_id: str, after_seconds: float) -> None:
        """
        Remove the job once ``after_seconds`` have elapsed.

        Raises:
            JobNotFoundError: If the id is unknown.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            self._deadlines[job_id] = self._clock() + after_seconds
            if loop is not None:
                self._timers[job_id] = loop.call_later(after_seconds, self.evict, job_id)

    def evict(self, job_id: str) -> bool:
        """Drop a job now. Returns False if it was already gone."""
        with self._lock:
            removed = self._remove(job_id)
        if removed:
            logger.info("Job %s - Evicted", job_id)
        return removed

    def clear(self) -> None:
        """Drop every job and cancel pending eviction timers."""
        with self._lock:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
            self._deadlines.clear()
            self._jobs.clear()

    def _remove(self, job_id: str) -> bool:
        handle = self._timers.pop(job_id, None)
        if handle is not None:
            handle.cancel()
        self._deadlines.pop(job_id, None)
        return self._jobs.pop(job_id, None) is not None

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [job_id for job_id, deadline in self._deadlines.items() if deadline <= now]
        for job_id in expired:
            self._remove(job_id)
            logger.info("Job %s - Evicted after retention window", job_id)


# Singleton instance for convenience
_job_registry: JobRegistry | None = None


def get_job_registry() -> JobRegistry:
    """Get or create the job registry singleton."""
    global _job_registry
    if _job_registry is None:
        _job_registry = JobRegistry()
    return _job_registry
