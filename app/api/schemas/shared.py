from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Response models are serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InspectUploadResponse(CamelModel):
    upload_token: str
    original_name: str
    size: int
    file_type: str
    sheet_names: List[str]
    previews: Dict[str, List[Dict[str, str]]] = Field(default_factory=dict)
    preview_available: bool
    preview_disabled_reason: Optional[str] = None
    expires_in_ms: int


class CommitUploadResponse(CamelModel):
    job_id: str
    upload_id: str
    batch_id: str
    status: str = "queued"


class ImportStatsResponse(CamelModel):
    total_processed: int = 0
    total_success: int = 0
    total_errors: int = 0
    sheets_processed: List[str] = Field(default_factory=list)
    duration_ms: int = 0


class ImportErrorDetailResponse(CamelModel):
    sheet: Optional[str] = None
    row: Optional[int] = None
    error: str


class ImportJobStatusResponse(CamelModel):
    job_id: str
    upload_id: str
    batch_id: Optional[str] = None
    original_name: Optional[str] = None
    status: str
    stats: ImportStatsResponse
    message: Optional[str] = None
    error_details: List[ImportErrorDetailResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ImportJobSummary(CamelModel):
    job_id: str
    upload_id: str
    batch_id: Optional[str] = None
    original_name: Optional[str] = None
    source_label: Optional[str] = None
    status: str
    message: Optional[str] = None
    stats: ImportStatsResponse
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ImportJobListResponse(CamelModel):
    jobs: List[ImportJobSummary]
    total_count: int
    limit: int
    offset: int


class UploadStatsResponse(CamelModel):
    batch_id: str
    total: int
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_mandal: Dict[str, int] = Field(default_factory=dict)
    by_state: Dict[str, int] = Field(default_factory=dict)
