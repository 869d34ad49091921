"""Tests for the in-memory job registry."""

import asyncio

import pytest

from app.billing.models import JobStatus, UnifiedRow
from app.billing.services.jobs import JobNotFoundError, JobRegistry, JobStateError


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestJobLifecycle:
    """Tests for create, get and terminal writes."""

    def test_create_starts_pending(self):
        registry = JobRegistry()
        job_id = registry.create()
        job = registry.get(job_id)
        assert job.id == job_id
        assert job.status is JobStatus.PENDING
        assert job.data == []

    def test_ids_are_unique(self):
        registry = JobRegistry()
        assert len({registry.create() for _ in range(50)}) == 50

    def test_complete_stores_rows(self):
        registry = JobRegistry()
        job_id = registry.create()
        registry.complete(job_id, [UnifiedRow(Name="Doe, Jane")])
        job = registry.get(job_id)
        assert job.status is JobStatus.COMPLETED
        assert job.data == [UnifiedRow(Name="Doe, Jane")]
        assert job.finished_at is not None

    def test_fail_stores_reason(self):
        registry = JobRegistry()
        job_id = registry.create()
        registry.fail(job_id, "No text extracted from PDF")
        job = registry.get(job_id)
        assert job.status is JobStatus.ERROR
        assert job.error == "No text extracted from PDF"

    def test_terminal_state_is_never_overwritten(self):
        """A second terminal write is refused and the first one stands."""
        registry = JobRegistry()
        job_id = registry.create()
        registry.complete(job_id, [])
        with pytest.raises(JobStateError):
            registry.fail(job_id, "late failure")
        with pytest.raises(JobStateError):
            registry.complete(job_id, [UnifiedRow(Name="x")])
        assert registry.get(job_id).status is JobStatus.COMPLETED

    def test_unknown_id_raises(self):
        registry = JobRegistry()
        with pytest.raises(JobNotFoundError) as exc_info:
            registry.get("missing")
        assert str(exc_info.value) == "Job missing not found"
        with pytest.raises(JobNotFoundError):
            registry.complete("missing", [])

    def test_get_returns_a_copy(self):
        """Callers cannot mutate the stored job."""
        registry = JobRegistry()
        job_id = registry.create()
        registry.get(job_id).data.append(UnifiedRow(Name="x"))
        assert registry.get(job_id).data == []


class TestEviction:
    """Tests for retention-window eviction."""

    def test_expired_job_is_gone_without_polling(self):
        """Jobs disappear after the window whether or not they were read."""
        clock = FakeClock()
        registry = JobRegistry(clock=clock)
        job_id = registry.create()
        registry.schedule_eviction(job_id, 1800)

        clock.advance(1799)
        assert registry.get(job_id).status is JobStatus.PENDING

        clock.advance(1)
        with pytest.raises(JobNotFoundError):
            registry.get(job_id)
        assert len(registry) == 0

    def test_timer_evicts_on_running_loop(self):
        """With an event loop, the entry is freed by a scheduled callback."""

        async def scenario():
            registry = JobRegistry()
            job_id = registry.create()
            registry.schedule_eviction(job_id, 0.01)
            await asyncio.sleep(0.05)
            return registry, job_id

        registry, job_id = asyncio.run(scenario())
        assert job_id not in registry._jobs

    def test_evict_is_idempotent(self):
        registry = JobRegistry()
        job_id = registry.create()
        assert registry.evict(job_id) is True
        assert registry.evict(job_id) is False

    def test_schedule_unknown_job_raises(self):
        with pytest.raises(JobNotFoundError):
            JobRegistry().schedule_eviction("missing", 10)

    def test_clear_drops_everything(self):
        registry = JobRegistry()
        for _ in range(3):
            registry.schedule_eviction(registry.create(), 60)
        registry.clear()
        assert len(registry) == 0
