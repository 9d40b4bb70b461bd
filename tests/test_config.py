from app.core.config import Settings


def test_settings_fields_and_defaults():
    defaults = Settings(_env_file=None)

    assert set(Settings.model_fields) == {
        "database_url",
        "log_level",
        "lead_import_chunk_size",
        "lead_import_concurrency",
        "lead_import_write_workers",
        "progress_interval_seconds",
        "max_error_details",
        "upload_staging_dir",
        "upload_session_ttl_seconds",
        "upload_max_file_size_mb",
        "preview_size_limit_mb",
        "preview_row_limit",
        "default_academic_year",
        "default_lead_source",
    }
    assert defaults.lead_import_concurrency == 1
    assert defaults.upload_session_ttl_seconds == 1800
    assert defaults.max_error_details == 200
    assert defaults.default_lead_source == "Bulk Upload"


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("LEAD_IMPORT_CHUNK_SIZE", "50")
    monkeypatch.setenv("DEFAULT_LEAD_SOURCE", "Campus Drive")

    configured = Settings(_env_file=None)

    assert configured.lead_import_chunk_size == 50
    assert configured.default_lead_source == "Campus Drive"
