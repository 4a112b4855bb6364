"""
progress.py
-----------
Purpose:
    API endpoints for watch-progress tracking.
    Thin adapter over ProgressStore; all aggregation rules live in the store.

Usage:
    1. GET  /api/video - Demo video metadata for the player
    2. POST /api/progress/queue - Report a playback position
    3. GET  /api/progress/furthest - Furthest committed position
    4. POST /api/progress/run-cron - Run a merge pass now
    5. GET  /api/stats - Store diagnostics
    6. POST /api/reset - Wipe all state (disabled in production)
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.api.progress_request import ProgressSampleRequest
from app.models.api.progress_response import (
    FurthestProgressResponse,
    MergeRunResponse,
    OkResponse,
    QueueSampleResponse,
    SampleResponse,
    StatsResponse,
    VideoResponse,
)
from app.routes.dependencies import get_progress_store
from app.services.progress_errors import PersistenceError, SampleValidationError
from app.services.progress_store import ProgressStore

router = APIRouter(prefix="/api", tags=["progress"])
logger = get_logger(__name__)


def _persistence_failure(e: PersistenceError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"message": f"Progress state may not be durable: {e}", "durable": False},
    )


@router.get("/video", response_model=VideoResponse)
async def get_video():
    """Metadata for the demo video."""
    return VideoResponse(
        video_id=settings.SAMPLE_VIDEO_ID,
        url=settings.SAMPLE_VIDEO_URL,
        title=settings.SAMPLE_VIDEO_TITLE,
        duration=settings.SAMPLE_VIDEO_DURATION,
    )


@router.post("/progress/queue", response_model=QueueSampleResponse)
async def queue_progress(
    request: ProgressSampleRequest,
    store: ProgressStore = Depends(get_progress_store),
):
    """
    Queue one playback position sample.

    Raises:
        422: Invalid ids or progress value
        503: Sample queued but not confirmed durable
    """
    try:
        sample = await asyncio.to_thread(
            store.enqueue, request.user_id, request.video_id, request.progress_seconds
        )
    except SampleValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    except PersistenceError as e:
        raise _persistence_failure(e) from e

    return QueueSampleResponse(item=SampleResponse.from_domain(sample))


@router.get("/progress/furthest", response_model=FurthestProgressResponse)
async def get_furthest_progress(
    user_id: str = Query(..., alias="userId", min_length=1),
    video_id: str = Query(..., alias="videoId", min_length=1),
    store: ProgressStore = Depends(get_progress_store),
):
    """Furthest committed position; 0 and null when nothing is committed yet."""
    record = await asyncio.to_thread(store.get_committed, user_id, video_id)
    if record is None:
        return FurthestProgressResponse(user_id=user_id, video_id=video_id)

    return FurthestProgressResponse(
        user_id=user_id,
        video_id=video_id,
        furthest_seconds=record.furthest_seconds,
        last_updated=record.updated_at,
    )


@router.post("/progress/run-cron", response_model=MergeRunResponse)
async def run_merge(store: ProgressStore = Depends(get_progress_store)):
    """
    Fold queued samples into committed progress now.

    Raises:
        503: Merge applied in memory but not confirmed durable
    """
    try:
        result = await asyncio.to_thread(store.run_merge)
    except PersistenceError as e:
        raise _persistence_failure(e) from e

    return MergeRunResponse(scanned_keys=result.scanned_keys, raised_keys=result.raised_keys)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(store: ProgressStore = Depends(get_progress_store)):
    stats = await asyncio.to_thread(store.get_stats)
    return StatsResponse(**stats.model_dump())


@router.post("/reset", response_model=OkResponse)
async def reset_store(store: ProgressStore = Depends(get_progress_store)):
    """Wipe queue and committed progress. Disabled unless configured."""
    if not settings.reset_allowed():
        logger.warning("Reset rejected by configuration", environment=settings.environment)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Reset is disabled")

    try:
        await asyncio.to_thread(store.reset)
    except PersistenceError as e:
        raise _persistence_failure(e) from e

    return OkResponse()
