"""
ETL job log state machine
"""

import time
import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any

from core.config import settings
from core.exceptions import InvalidJobTransitionError, JobNotFoundError
from ingestion.loaders.repository import ProductRepository
from models.base import JobStatus
from schemas.etl import JobRecord
import logging

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    JobStatus.STARTED: {
        JobStatus.PROCESSING,
        JobStatus.COMPLETED,
        JobStatus.COMPLETED_WITH_ERRORS,
        JobStatus.FAILED,
    },
    JobStatus.PROCESSING: {
        JobStatus.PROCESSING,
        JobStatus.COMPLETED,
        JobStatus.COMPLETED_WITH_ERRORS,
        JobStatus.FAILED,
    },
    JobStatus.COMPLETED: set(),
    JobStatus.COMPLETED_WITH_ERRORS: set(),
    JobStatus.FAILED: set(),
}


def new_job_id() -> str:
    """``job_<epoch ms>_<9 random hex chars>``"""
    return f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class JobTracker:
    """
    Records the lifecycle of one ETL run in the job log.

    started -> processing* -> completed | completed_with_errors | failed

    Terminal jobs never change again. Every write is committed right away
    so progress is visible to readers while the run is still going.
    """

    def __init__(self, repository: ProductRepository, max_error_messages: Optional[int] = None):
        self.repository = repository
        self.max_error_messages = max_error_messages or settings.ETL_MAX_ERROR_MESSAGES

    async def start(self, file_name: str) -> JobRecord:
        job = JobRecord(
            id=new_job_id(),
            file_name=file_name,
            status=JobStatus.STARTED,
            start_time=datetime.utcnow(),
        )
        await self.repository.create_job(job)
        await self.repository.commit()
        logger.info(f"Started ETL job {job.id} for {file_name}")
        return job

    async def record_progress(self, job_id: str, processed: int, success: int, error: int) -> None:
        await self._transition(job_id, JobStatus.PROCESSING, {
            "records_processed": processed,
            "records_success": success,
            "records_error": error,
        })

    async def complete(
        self,
        job_id: str,
        success: int,
        error: int,
        error_messages: Optional[List[str]] = None,
        processed: Optional[int] = None
    ) -> JobRecord:
        status = JobStatus.COMPLETED_WITH_ERRORS if error else JobStatus.COMPLETED
        job = await self._transition(job_id, status, {
            "records_processed": processed if processed is not None else success + error,
            "records_success": success,
            "records_error": error,
            "error_messages": self._bounded(error_messages) or None,
            **self._finish_times(await self._require(job_id)),
        })
        logger.info(f"ETL job {job_id} finished as {status.value}: {success} ok, {error} failed")
        return job

    async def fail(self, job_id: str, message: str) -> JobRecord:
        job = await self._transition(job_id, JobStatus.FAILED, {
            "error_messages": [message],
            **self._finish_times(await self._require(job_id)),
        })
        logger.error(f"ETL job {job_id} failed: {message}")
        return job

    async def get(self, job_id: str) -> Optional[JobRecord]:
        return await self.repository.get_job(job_id)

    async def recent(self, limit: int = 10) -> List[JobRecord]:
        return await self.repository.recent_jobs(limit)

    async def purge_before(self, cutoff: datetime) -> int:
        deleted = await self.repository.delete_jobs_before(cutoff)
        await self.repository.commit()
        return deleted

    # ------------------------------------------------------------------

    async def _require(self, job_id: str) -> JobRecord:
        job = await self.repository.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"ETL job {job_id} not found", context={"job_id": job_id})
        return job

    async def _transition(self, job_id: str, target: JobStatus, changes: Dict[str, Any]) -> JobRecord:
        job = await self._require(job_id)
        if target not in ALLOWED_TRANSITIONS[job.status]:
            raise InvalidJobTransitionError(
                f"Cannot move job {job_id} from {job.status.value} to {target.value}",
                context={"job_id": job_id, "from": job.status.value, "to": target.value}
            )

        await self.repository.update_job(job_id, {"status": target, **changes})
        await self.repository.commit()
        return job.model_copy(update={"status": target, **changes})

    def _bounded(self, messages: Optional[List[str]]) -> List[str]:
        return list(messages or [])[:self.max_error_messages]

    @staticmethod
    def _finish_times(job: JobRecord) -> Dict[str, Any]:
        end_time = datetime.utcnow()
        return {
            "end_time": end_time,
            "duration_seconds": (end_time - job.start_time).total_seconds(),
        }
