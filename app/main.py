"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
builds the upload session store and import worker pool, and registers the
API routers.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.logging_config import configure_logging
from .api.routers import jobs, lead_uploads
from .db.session import init_db
from .domain.imports.orchestrator import process_import_job
from .domain.imports.worker_pool import ImportWorkerPool
from .domain.uploads.sessions import UploadSessionStore

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
    else:
        try:
            init_db()
            logger.info("Database tables ready")
        except Exception:
            logger.exception("Failed to initialize database tables; the application cannot start")
            raise

    os.makedirs(settings.upload_staging_dir, exist_ok=True)
    app.state.upload_sessions = UploadSessionStore(settings.upload_session_ttl_seconds)
    app.state.import_workers = ImportWorkerPool(
        process_import_job,
        concurrency=settings.lead_import_concurrency,
    )
    app.state.import_workers.start()

    yield  # Application runs here

    app.state.import_workers.shutdown(wait=False)
    app.state.upload_sessions.clear()


# Initialize FastAPI application
app = FastAPI(
    title="Lead Import API",
    version="1.0.0",
    description="Bulk import of admission leads from spreadsheets and CSV files",
    lifespan=lifespan,
)

# Allow origins from environment variable or defaults for development
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(lead_uploads.router)
app.include_router(jobs.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Lead Import API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for deployment monitoring."""
    workers = getattr(app.state, "import_workers", None)
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "lead-import-api",
        "importWorkersRunning": bool(workers and workers.running),
        "pendingImportJobs": workers.pending() if workers else 0,
    }
