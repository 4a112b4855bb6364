# app/main.py
"""
Watch-progress service entry point with progress store lifecycle management.
"""

import asyncio
import contextlib
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.jobs.progress_merge_job import ProgressMergeJob
from app.middleware import CORSMiddleware, RequestContextMiddleware
from app.routes import health, progress
from app.services.progress_persistence import JsonFileBackend
from app.services.progress_store import ProgressStore

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build and load the progress store, then start the merge scheduler."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    store: ProgressStore | None = getattr(app.state, "progress_store", None)
    if store is None:
        store = ProgressStore(JsonFileBackend(settings.data_dir()))
        app.state.progress_store = store

    if not store.loaded:
        await asyncio.to_thread(store.load)

    merge_task: asyncio.Task | None = None
    app.state.merge_job = None

    job_config = settings.get_merge_job_config()
    scheduler_enabled = app.state.merge_scheduler_enabled
    if scheduler_enabled is None:
        scheduler_enabled = job_config["enabled"]

    if scheduler_enabled:
        merge_job = ProgressMergeJob(store, interval_seconds=job_config["interval_seconds"])
        app.state.merge_job = merge_job
        merge_task = asyncio.create_task(merge_job.run_forever(), name="progress_merge")

    logger.info("All services initialized successfully", merge_scheduler=bool(scheduler_enabled))

    yield

    logger.info("Application shutting down")

    if merge_task is not None:
        merge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await merge_task

    logger.info("All services closed successfully")


def create_app(
    store: ProgressStore | None = None, merge_scheduler_enabled: bool | None = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        store: Pre-built store to serve (loaded on startup if needed);
            a JSON file store under PROGRESS_DATA_DIR is built otherwise
        merge_scheduler_enabled: Override MERGE_SCHEDULER_ENABLED
    """
    application = FastAPI(
        title="Watch Progress Service",
        description="Queues playback samples and merges them into furthest-watched progress",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.progress_store = store
    application.state.merge_scheduler_enabled = merge_scheduler_enabled

    application.include_router(health.router)
    application.include_router(progress.router)

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
            request_id=getattr(request.state, "request_id", None),
        )
        return response

    # Added last so it runs first
    application.add_middleware(
        CORSMiddleware,
        allowed_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
    )
    application.add_middleware(RequestContextMiddleware)

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
