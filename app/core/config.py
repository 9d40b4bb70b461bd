from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./admissions.db"
    log_level: str = "INFO"

    # Bulk lead import pipeline
    lead_import_chunk_size: int = 2000
    lead_import_concurrency: int = 1  # >1 requires a database-backed enquiry sequence
    lead_import_write_workers: int = 4  # Threads writing records inside one chunk
    progress_interval_seconds: float = 5.0
    max_error_details: int = 200

    # Upload staging / inspect-then-commit sessions
    upload_staging_dir: str = "./uploads/lead-imports"
    upload_session_ttl_seconds: int = 1800
    upload_max_file_size_mb: int = 200
    preview_size_limit_mb: int = 55
    preview_row_limit: int = 10

    # Record defaults
    default_academic_year: int = 2025
    default_lead_source: str = "Bulk Upload"

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
