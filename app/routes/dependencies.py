"""
Dependency providers for route handlers.

The store and merge job are created in the application lifespan and kept
on app.state; handlers reach them only through these providers.
"""

from fastapi import HTTPException, Request, status

from app.jobs.progress_merge_job import ProgressMergeJob
from app.services.progress_store import ProgressStore


def get_progress_store(request: Request) -> ProgressStore:
    store = getattr(request.app.state, "progress_store", None)
    if store is None or not store.loaded:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Progress store not ready"
        )
    return store


def get_merge_job(request: Request) -> ProgressMergeJob | None:
    return getattr(request.app.state, "merge_job", None)
