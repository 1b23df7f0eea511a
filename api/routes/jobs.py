"""
ETL job log endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from api.dependencies import get_repository
from ingestion.job_tracker import JobTracker
from ingestion.loaders.repository import ProductRepository
from schemas.api import JobListResponse
from schemas.etl import JobRecord
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("", response_model=JobListResponse)
async def list_jobs(
    request: Request,
    limit: int = Query(10, ge=1, le=100, description="Number of recent jobs to return"),
    repository: ProductRepository = Depends(get_repository)
):
    """Most recent ETL jobs, newest first"""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] GET /jobs - limit={limit}")

    jobs = await JobTracker(repository).recent(limit)
    return JobListResponse(request_id=request_id, count=len(jobs), jobs=jobs)


@router.get("/{job_id}", response_model=JobRecord)
async def get_job(job_id: str, repository: ProductRepository = Depends(get_repository)):
    """Status and counters of one ETL job; poll this while an upload runs"""
    job = await JobTracker(repository).get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job
