# app/routes/health.py
"""
Health check endpoints with progress store and merge job monitoring.
"""

import asyncio
import time

from fastapi import APIRouter, Depends, Request

from app.config import settings
from app.jobs.progress_merge_job import ProgressMergeJob
from app.routes.dependencies import get_merge_job

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "watch-progress"}


@router.get("/readyz")
async def readyz(request: Request, merge_job: ProgressMergeJob | None = Depends(get_merge_job)):
    """
    Readiness check for the progress store and the merge job.
    """
    checks = {}
    overall_ok = True

    # 1) Progress store
    t0 = time.time()
    store = getattr(request.app.state, "progress_store", None)
    try:
        if store is None or not store.loaded:
            checks["progress_store"] = {"ok": False, "error": "Progress store not loaded"}
            overall_ok = False
        else:
            stats = await asyncio.to_thread(store.get_stats)
            checks["progress_store"] = {
                "ok": True,
                "latency_ms": round((time.time() - t0) * 1000, 1),
                "pending_samples": stats.pending_samples,
                "committed_keys": stats.committed_keys,
                "storage": stats.storage,
            }
    except Exception as e:
        checks["progress_store"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Merge job
    if merge_job is None:
        checks["merge_job"] = {"ok": True, "enabled": False}
    else:
        job_health = merge_job.health_check()
        checks["merge_job"] = {"ok": job_health["healthy"], "enabled": True, **job_health}
        overall_ok = overall_ok and job_health["healthy"]

    checks["configuration"] = {
        "ok": True,
        "environment": settings.environment,
        "reset_allowed": settings.reset_allowed(),
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
