"""
Unit tests for the ETL job log
"""

import re
import pytest
from datetime import datetime, timedelta
from core.exceptions import InvalidJobTransitionError, JobNotFoundError
from ingestion.job_tracker import JobTracker, new_job_id
from models.base import JobStatus
from schemas.etl import JobRecord


def test_job_id_format():
    assert re.match(r"^job_\d+_[0-9a-f]{9}$", new_job_id())
    assert new_job_id() != new_job_id()


class TestJobTracker:
    """Test job lifecycle transitions"""

    @pytest.mark.asyncio
    async def test_start_creates_committed_job(self, memory_repository):
        tracker = JobTracker(memory_repository)

        job = await tracker.start("products.csv")

        assert job.status == JobStatus.STARTED
        assert job.file_name == "products.csv"
        assert job.records_processed == 0
        assert memory_repository.jobs[job.id] == job
        assert memory_repository.commits == 1

    @pytest.mark.asyncio
    async def test_progress_then_complete(self, memory_repository):
        tracker = JobTracker(memory_repository)
        job = await tracker.start("products.csv")

        await tracker.record_progress(job.id, processed=100, success=99, error=1)
        progress = await tracker.get(job.id)
        assert progress.status == JobStatus.PROCESSING
        assert progress.records_processed == 100
        assert progress.end_time is None

        finished = await tracker.complete(job.id, success=149, error=1, error_messages=["Product X: bad"])

        stored = await tracker.get(job.id)
        assert finished.status == stored.status == JobStatus.COMPLETED_WITH_ERRORS
        assert stored.records_processed == 150
        assert stored.error_messages == ["Product X: bad"]
        assert stored.end_time is not None
        assert stored.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_complete_without_errors(self, memory_repository):
        tracker = JobTracker(memory_repository)
        job = await tracker.start("products.csv")

        await tracker.complete(job.id, success=10, error=0)

        stored = await tracker.get(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.error_messages is None

    @pytest.mark.asyncio
    async def test_error_messages_are_bounded(self, memory_repository):
        tracker = JobTracker(memory_repository, max_error_messages=3)
        job = await tracker.start("products.csv")

        await tracker.complete(job.id, success=0, error=5, error_messages=[f"e{i}" for i in range(5)])

        assert (await tracker.get(job.id)).error_messages == ["e0", "e1", "e2"]

    @pytest.mark.asyncio
    async def test_fail(self, memory_repository):
        tracker = JobTracker(memory_repository)
        job = await tracker.start("products.csv")

        await tracker.fail(job.id, "database unavailable")

        stored = await tracker.get(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.error_messages == ["database unavailable"]
        assert stored.end_time is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", ["complete", "fail"])
    async def test_terminal_jobs_cannot_change(self, memory_repository, terminal):
        tracker = JobTracker(memory_repository)
        job = await tracker.start("products.csv")
        if terminal == "complete":
            await tracker.complete(job.id, success=1, error=0)
        else:
            await tracker.fail(job.id, "boom")

        with pytest.raises(InvalidJobTransitionError):
            await tracker.record_progress(job.id, processed=1, success=1, error=0)
        with pytest.raises(InvalidJobTransitionError):
            await tracker.complete(job.id, success=1, error=0)
        with pytest.raises(InvalidJobTransitionError):
            await tracker.fail(job.id, "again")

    @pytest.mark.asyncio
    async def test_unknown_job(self, memory_repository):
        tracker = JobTracker(memory_repository)

        assert await tracker.get("job_missing") is None
        with pytest.raises(JobNotFoundError):
            await tracker.record_progress("job_missing", processed=1, success=1, error=0)

    @pytest.mark.asyncio
    async def test_recent_is_newest_first(self, memory_repository):
        now = datetime.utcnow()
        for offset in range(3):
            await memory_repository.create_job(JobRecord(
                id=f"job_{offset}",
                file_name="products.csv",
                status=JobStatus.COMPLETED,
                start_time=now - timedelta(minutes=offset),
            ))

        recent = await JobTracker(memory_repository).recent(limit=2)

        assert [job.id for job in recent] == ["job_0", "job_1"]

    @pytest.mark.asyncio
    async def test_purge_before(self, memory_repository):
        now = datetime.utcnow()
        await memory_repository.create_job(JobRecord(
            id="job_old", file_name="a.csv", status=JobStatus.FAILED, start_time=now - timedelta(days=60)
        ))
        await memory_repository.create_job(JobRecord(
            id="job_new", file_name="b.csv", status=JobStatus.COMPLETED, start_time=now
        ))

        deleted = await JobTracker(memory_repository).purge_before(now - timedelta(days=30))

        assert deleted == 1
        assert list(memory_repository.jobs) == ["job_new"]
