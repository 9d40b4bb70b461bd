"""
Shared dependencies for the API routers.

The upload session store and the import worker pool are built once in the
application lifespan and stored on ``app.state``; handlers receive them
through these dependencies instead of module-level globals.
"""
from fastapi import HTTPException, Request

from app.domain.imports.worker_pool import ImportWorkerPool
from app.domain.uploads.sessions import UploadSessionStore


def get_upload_sessions(request: Request) -> UploadSessionStore:
    store = getattr(request.app.state, "upload_sessions", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Upload sessions are not available")
    return store


def get_worker_pool(request: Request) -> ImportWorkerPool:
    pool = getattr(request.app.state, "import_workers", None)
    if pool is None:
        raise HTTPException(status_code=503, detail="Import workers are not available")
    return pool
