"""
Endpoints for tracking lead import job progress.
"""
from fastapi import APIRouter, HTTPException, Query

from app.api.schemas.shared import ImportJobListResponse, ImportJobStatusResponse
from app.domain.imports.jobs import get_import_job, list_import_jobs

router = APIRouter(prefix="/api/leads", tags=["import-jobs"])


@router.get("/import-jobs/{job_id}", response_model=ImportJobStatusResponse)
def get_import_job_endpoint(job_id: str):
    job = get_import_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found")
    return ImportJobStatusResponse(**job)


@router.get("/import-jobs", response_model=ImportJobListResponse)
def list_import_jobs_endpoint(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    jobs, total = list_import_jobs(limit=limit, offset=offset)
    return ImportJobListResponse(
        jobs=jobs,
        total_count=total,
        limit=limit,
        offset=offset,
    )
