"""Scheduled job inspection and cancellation."""
from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_scheduler, verify_api_key
from ..schemas.device import StatusResponse
from ..schemas.job import JobListResponse, JobResponse
from ..services.scheduler import OutreachScheduler

router = APIRouter(
    prefix="/api/v1/jobs",
    tags=["jobs"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("", response_model=JobListResponse)
async def list_jobs(scheduler: OutreachScheduler = Depends(get_scheduler)):
    jobs = scheduler.list_jobs()
    return JobListResponse(
        count=len(jobs),
        jobs=[JobResponse.model_validate(job) for job in jobs],
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, scheduler: OutreachScheduler = Depends(get_scheduler)):
    job = scheduler.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.model_validate(job)


@router.delete("/{job_id}", response_model=StatusResponse)
async def cancel_job(job_id: str, scheduler: OutreachScheduler = Depends(get_scheduler)):
    """Cancel a pending one-shot job."""
    if not scheduler.cancel(job_id):
        raise HTTPException(status_code=404, detail="No pending one-shot job with that id")
    return StatusResponse(status="cancelled")
