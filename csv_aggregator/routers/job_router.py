# routers/job_router.py

"""
Job Management API Routes
"""

from fastapi import APIRouter, Depends, HTTPException

from csv_aggregator.core.dependencies import get_aggregation_service, verify_api_key
from csv_aggregator.models.job import ClearJobsResponse, JobStatus
from csv_aggregator.services.aggregation_service import AggregationService

router = APIRouter(tags=["Jobs"], dependencies=[Depends(verify_api_key)])


@router.get("/status/{job_id}", response_model=JobStatus, response_model_exclude_none=True)
async def get_job_status(
        job_id: str,
        service: AggregationService = Depends(get_aggregation_service)
):
    """Get status of an aggregation job"""
    job = service.query(job_id)

    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    return job


@router.post("/jobs/{job_id}/cancel", response_model=JobStatus, status_code=202,
             response_model_exclude_none=True)
async def cancel_job(
        job_id: str,
        service: AggregationService = Depends(get_aggregation_service)
):
    """Ask a running job to stop; it ends in the error state"""
    job = service.query(job_id)

    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    if not service.cancel(job_id):
        raise HTTPException(status_code=409, detail=f"Job already {job.status.value}")

    return service.query(job_id)


@router.delete("/jobs", response_model=ClearJobsResponse)
async def clear_finished_jobs(
        service: AggregationService = Depends(get_aggregation_service)
):
    """Clear all completed and failed jobs from memory"""
    cleared_count = service.registry.clear_finished_jobs()
    active_count = service.registry.get_active_jobs_count()

    return ClearJobsResponse(
        message=f"Cleared {cleared_count} finished jobs",
        active_jobs=active_count
    )
