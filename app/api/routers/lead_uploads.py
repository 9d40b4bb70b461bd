"""
Bulk lead upload endpoints: inspect a file, commit it as an import job and
summarize the leads a batch created.
"""
import json
import logging
import uuid
from typing import Any, Iterable, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from app.api.dependencies import get_upload_sessions, get_worker_pool
from app.api.schemas.shared import CommitUploadResponse, InspectUploadResponse, UploadStatsResponse
from app.core.config import settings
from app.db.session import get_db
from app.domain.imports.batch_stats import upload_batch_stats
from app.domain.imports.jobs import create_import_job
from app.domain.imports.processors.tabular_reader import SourceReadError, UnsupportedFileTypeError
from app.domain.imports.worker_pool import ImportWorkerPool
from app.domain.uploads.sessions import UploadSessionStore, remove_staged_file
from app.domain.uploads.staging import (
    StagedUpload,
    UploadTooLargeError,
    inspect_staged_upload,
    stage_upload,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leads", tags=["lead-uploads"])

MEGABYTE = 1024 * 1024
MISSING_FILE_MESSAGE = "Please upload an Excel or CSV file"


def parse_selected_sheets(values: Optional[Iterable[Any]]) -> List[str]:
    """
    Accept sheet selections as a JSON array string, a comma separated string
    or repeated form fields. Returns trimmed, de-duplicated names in order.
    """
    names: List[str] = []
    for value in values or []:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            names.extend(parse_selected_sheets(value))
            continue
        text = str(value).strip()
        if not text:
            continue
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                names.extend(parse_selected_sheets(parsed))
                continue
        names.extend(part.strip() for part in text.split(","))

    unique: List[str] = []
    for name in names:
        if name and name not in unique:
            unique.append(name)
    return unique


def _stage(file: UploadFile) -> StagedUpload:
    original_name = file.filename or ""
    try:
        return stage_upload(
            file.file,
            original_name,
            settings.upload_staging_dir,
            settings.upload_max_file_size_mb * MEGABYTE,
        )
    except UnsupportedFileTypeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except UploadTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc))


@router.post("/bulk-upload/inspect", response_model=InspectUploadResponse)
def inspect_bulk_upload(
    file: Optional[UploadFile] = File(None),
    uploaded_by: Optional[str] = Form(None, alias="uploadedBy"),
    sessions: UploadSessionStore = Depends(get_upload_sessions),
):
    """
    Stage an uploaded workbook or CSV and return its sheets with a short
    preview. The returned token is valid for ``upload_session_ttl_seconds``.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail=MISSING_FILE_MESSAGE)

    staged = _stage(file)
    try:
        inspection = inspect_staged_upload(
            staged,
            settings.preview_size_limit_mb * MEGABYTE,
            settings.preview_row_limit,
        )
        if not inspection.sheet_names:
            raise HTTPException(status_code=400, detail="No worksheets found in the uploaded file.")
        token = str(uuid.uuid4())
        session = sessions.create(
            token,
            staged_file_path=staged.path,
            original_name=staged.original_name,
            file_size_bytes=staged.size,
            extension=staged.extension,
            sheet_names=inspection.sheet_names,
            uploaded_by=uploaded_by,
        )
    except HTTPException:
        remove_staged_file(staged.path)
        raise
    except SourceReadError as exc:
        remove_staged_file(staged.path)
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        remove_staged_file(staged.path)
        logger.exception("Failed to analyze %s", staged.original_name)
        raise HTTPException(status_code=500, detail=f"Failed to analyze workbook: {exc}")

    return InspectUploadResponse(
        upload_token=session.token,
        original_name=session.original_name,
        size=session.file_size_bytes,
        file_type=inspection.file_type,
        sheet_names=inspection.sheet_names,
        previews=inspection.previews,
        preview_available=inspection.preview_available,
        preview_disabled_reason=inspection.preview_disabled_reason,
        expires_in_ms=session.expires_in_ms,
    )


@router.post("/bulk-upload", response_model=CommitUploadResponse, status_code=202)
def commit_bulk_upload(
    file: Optional[UploadFile] = File(None),
    upload_token: Optional[str] = Form(None, alias="uploadToken"),
    selected_sheets: Optional[List[str]] = Form(None, alias="selectedSheets"),
    source: Optional[str] = Form(None),
    uploaded_by: Optional[str] = Form(None, alias="uploadedBy"),
    sessions: UploadSessionStore = Depends(get_upload_sessions),
    workers: ImportWorkerPool = Depends(get_worker_pool),
):
    """
    Queue an import of a fresh upload or of a previously inspected file.

    Returns immediately with the job id; poll ``/import-jobs/{job_id}``.
    """
    session = None
    if file is not None and file.filename:
        staged = _stage(file)
    elif upload_token:
        session = sessions.consume(upload_token)
        if session is None:
            raise HTTPException(
                status_code=410,
                detail="Upload session expired or not found. Please analyze the file again.",
            )
        staged = StagedUpload(
            path=session.staged_file_path,
            original_name=session.original_name,
            extension=session.extension,
            size=session.file_size_bytes,
        )
        uploaded_by = uploaded_by or session.uploaded_by
    else:
        raise HTTPException(status_code=400, detail=MISSING_FILE_MESSAGE)

    sheets = parse_selected_sheets(selected_sheets)
    if not sheets and session is not None:
        sheets = list(session.sheet_names)
    source_label = (source or "").strip() or settings.default_lead_source

    try:
        job = create_import_job(
            upload_id=str(uuid.uuid4()),
            batch_id=str(uuid.uuid4()),
            file_path=staged.path,
            original_name=staged.original_name,
            file_size=staged.size,
            extension=staged.extension,
            selected_sheets=sheets,
            source_label=source_label,
            created_by=uploaded_by,
            upload_token=upload_token if session is not None else None,
        )
        workers.enqueue(job["job_id"])
    except Exception as exc:
        remove_staged_file(staged.path)
        logger.exception("Failed to queue bulk upload of %s", staged.original_name)
        raise HTTPException(status_code=500, detail=f"Failed to queue bulk upload: {exc}")

    return CommitUploadResponse(
        job_id=job["job_id"],
        upload_id=job["upload_id"],
        batch_id=job["batch_id"],
        status=job["status"],
    )


@router.get("/upload-stats", response_model=UploadStatsResponse)
def get_upload_stats(
    batch_id: Optional[str] = Query(None, alias="batchId"),
    db: Session = Depends(get_db),
):
    if not batch_id:
        raise HTTPException(status_code=400, detail="Batch ID is required")
    return UploadStatsResponse(**upload_batch_stats(db, batch_id))
