"""
Persistent tracking for lead import jobs.

Jobs move through ``queued -> processing -> completed | failed``. Status
changes are monotonic: a job never returns to an earlier state and a
terminal job only accepts a repeat of its own terminal write.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.db.models import ImportJob, ImportJobErrorDetail, utcnow
from app.db.session import get_session_local
from app.domain.imports.progress import ErrorDetail, ImportStats

logger = logging.getLogger(__name__)

QUEUED = "queued"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

_ALLOWED_TRANSITIONS = {
    QUEUED: {QUEUED, PROCESSING, FAILED},
    PROCESSING: {PROCESSING, COMPLETED, FAILED},
    COMPLETED: {COMPLETED},
    FAILED: {FAILED},
}


class InvalidJobTransition(ValueError):
    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Import job {job_id} cannot move from {current} to {requested}")


def _session_factory(factory: Optional[Callable[[], Session]]) -> Callable[[], Session]:
    return factory or get_session_local()


def _stats_from_row(job: ImportJob) -> Dict[str, Any]:
    return {
        "total_processed": job.stats_total_processed or 0,
        "total_success": job.stats_total_success or 0,
        "total_errors": job.stats_total_errors or 0,
        "sheets_processed": list(job.stats_sheets_processed or []),
        "duration_ms": job.stats_duration_ms or 0,
    }


def _error_to_dict(detail: ImportJobErrorDetail) -> Dict[str, Any]:
    return {"sheet": detail.sheet, "row": detail.row_number, "error": detail.error}


def _row_to_job(job: ImportJob, error_details: Optional[List[ImportJobErrorDetail]] = None) -> Dict[str, Any]:
    return {
        "job_id": job.id,
        "upload_id": job.upload_id,
        "batch_id": job.upload_batch_id,
        "original_name": job.original_name,
        "file_path": job.file_path,
        "file_size": job.file_size,
        "extension": job.extension,
        "selected_sheets": list(job.selected_sheets or []),
        "source_label": job.source_label,
        "created_by": job.created_by,
        "status": job.status,
        "message": job.message,
        "stats": _stats_from_row(job),
        "error_details": [_error_to_dict(detail) for detail in (error_details or [])],
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "updated_at": job.updated_at,
    }


def _load_error_details(db: Session, job_id: str) -> List[ImportJobErrorDetail]:
    return (
        db.query(ImportJobErrorDetail)
        .filter(ImportJobErrorDetail.import_job_id == job_id)
        .order_by(ImportJobErrorDetail.id)
        .all()
    )


def create_import_job(
    *,
    upload_id: str,
    batch_id: str,
    file_path: str,
    original_name: str,
    file_size: int,
    extension: str,
    selected_sheets: Optional[List[str]] = None,
    source_label: Optional[str] = None,
    created_by: Optional[str] = None,
    upload_token: Optional[str] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Dict[str, Any]:
    """Persist a new job in the ``queued`` state."""
    job = ImportJob(
        id=str(uuid.uuid4()),
        upload_id=upload_id,
        upload_batch_id=batch_id,
        upload_token=upload_token,
        original_name=original_name,
        file_path=file_path,
        file_size=file_size,
        extension=extension,
        selected_sheets=list(selected_sheets or []),
        source_label=source_label,
        status=QUEUED,
        created_by=created_by,
        message="Queued for processing",
        stats_total_processed=0,
        stats_total_success=0,
        stats_total_errors=0,
        stats_sheets_processed=[],
        stats_duration_ms=0,
    )
    with _session_factory(session_factory)() as db:
        db.add(job)
        db.commit()
        db.refresh(job)
        logger.info("Created import job %s for %s (batch %s)", job.id, original_name, batch_id)
        return _row_to_job(job)


def update_import_job(
    job_id: str,
    *,
    status: Optional[str] = None,
    message: Optional[str] = None,
    stats: Optional[ImportStats] = None,
    started: bool = False,
    completed: bool = False,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Apply a partial update to a job by id.

    Repeating an update is harmless. ``started_at`` and ``completed_at`` are
    set once and never overwritten.

    Raises:
        InvalidJobTransition: when ``status`` would move the job backwards.
    """
    with _session_factory(session_factory)() as db:
        job = db.get(ImportJob, job_id)
        if job is None:
            return None

        if status is not None:
            if status not in _ALLOWED_TRANSITIONS.get(job.status, set()):
                raise InvalidJobTransition(job_id, job.status, status)
            job.status = status
        if message is not None:
            job.message = message
        if stats is not None:
            job.stats_total_processed = stats.total_processed
            job.stats_total_success = stats.total_success
            job.stats_total_errors = stats.total_errors
            job.stats_sheets_processed = list(stats.sheets_processed)
            job.stats_duration_ms = stats.duration_ms
        now = utcnow()
        if started and job.started_at is None:
            job.started_at = now
        if completed and job.completed_at is None:
            job.completed_at = now
        job.updated_at = now

        db.commit()
        db.refresh(job)
        return _row_to_job(job)


def record_error_details(
    job_id: str,
    details: Iterable[ErrorDetail],
    *,
    session_factory: Optional[Callable[[], Session]] = None,
) -> int:
    """Append error details to a job. Returns how many rows were written."""
    rows = [
        ImportJobErrorDetail(
            import_job_id=job_id,
            sheet=detail.sheet,
            row_number=detail.row_number,
            error=detail.error,
        )
        for detail in details
    ]
    if not rows:
        return 0
    with _session_factory(session_factory)() as db:
        db.add_all(rows)
        db.commit()
    return len(rows)


def get_error_details(
    job_id: str,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
) -> List[Dict[str, Any]]:
    with _session_factory(session_factory)() as db:
        return [_error_to_dict(detail) for detail in _load_error_details(db, job_id)]


def get_import_job(
    job_id: str,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Optional[Dict[str, Any]]:
    """Fetch a single job by ID, including its error details."""
    with _session_factory(session_factory)() as db:
        job = db.get(ImportJob, job_id)
        if job is None:
            return None
        return _row_to_job(job, _load_error_details(db, job_id))


def list_import_jobs(
    *,
    limit: int = 50,
    offset: int = 0,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """List jobs, most recent first, with the total job count."""
    with _session_factory(session_factory)() as db:
        total = db.query(ImportJob).count()
        jobs = (
            db.query(ImportJob)
            .order_by(ImportJob.created_at.desc(), ImportJob.id)
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [_row_to_job(job) for job in jobs], total


def complete_import_job(
    job_id: str,
    *,
    success: bool,
    stats: ImportStats,
    message: str,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Optional[Dict[str, Any]]:
    """Move a job to its terminal state with final statistics."""
    return update_import_job(
        job_id,
        status=COMPLETED if success else FAILED,
        message=message,
        stats=stats,
        completed=True,
        session_factory=session_factory,
    )
