"""
Progress Merge Job.
Periodically folds queued progress samples into committed progress
(the "cron" the player can also trigger on demand).
"""

import asyncio
from datetime import UTC, datetime, timedelta

from app.infrastructure.observability.logging import get_logger
from app.services.progress_errors import PersistenceError
from app.services.progress_store import ProgressStore

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
MAX_CONSECUTIVE_FAILURES = 3  # Unhealthy after this many failed runs in a row


class ProgressMergeJobError(Exception):
    """Custom exception for progress merge job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class MergeJobMetrics:
    """Metrics tracking across merge job runs."""

    def __init__(self):
        self.runs = 0
        self.failures = 0
        self.consecutive_failures = 0
        self.total_scanned_keys = 0
        self.total_raised_keys = 0
        self.errors: list[dict] = []
        self.reset()

    def reset(self):
        """Reset per-run metrics for a new job run."""
        self.start_time = datetime.now(UTC)
        self.scanned_keys = 0
        self.raised_keys = 0
        self.total_duration_seconds = 0.0

    def record_success(self, scanned_keys: int, raised_keys: int):
        self.runs += 1
        self.consecutive_failures = 0
        self.scanned_keys = scanned_keys
        self.raised_keys = raised_keys
        self.total_scanned_keys += scanned_keys
        self.total_raised_keys += raised_keys

    def record_failure(self, error: str, error_type: str):
        self.runs += 1
        self.failures += 1
        self.consecutive_failures += 1
        self.errors.append(
            {
                "error": error,
                "error_type": error_type,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        # Keep only recent failures
        self.errors = self.errors[-20:]

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "progress_merge",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 3),
            "scanned_keys": self.scanned_keys,
            "raised_keys": self.raised_keys,
            "runs": self.runs,
            "failures": self.failures,
            "consecutive_failures": self.consecutive_failures,
            "total_scanned_keys": self.total_scanned_keys,
            "total_raised_keys": self.total_raised_keys,
            "errors_count": len(self.errors),
        }


class ProgressMergeJob:
    """
    Background job that runs merge passes on a fixed interval.

    Safe at any cadence: a pass with nothing new to fold is a no-op.
    """

    def __init__(self, store: ProgressStore, interval_seconds: float = DEFAULT_INTERVAL_SECONDS):
        if interval_seconds <= 0:
            raise ProgressMergeJobError(
                "Merge interval must be positive", operation="configure", recoverable=False
            )
        self.store = store
        self.interval_seconds = interval_seconds
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = MergeJobMetrics()

        if interval_seconds < 5:
            logger.warning("Progress merge interval is very short", interval_seconds=interval_seconds)

        logger.info("Progress merge job configured", interval_seconds=interval_seconds)

    async def run_once(self) -> dict:
        """
        Run a single merge pass.

        Returns:
            Dict: Job execution metrics

        Raises:
            ProgressMergeJobError: If the pass fails (including persistence)
        """
        if self.is_running:
            logger.warning("Progress merge job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            result = await asyncio.to_thread(self.store.run_merge)

            self.job_metrics.record_success(result.scanned_keys, result.raised_keys)
            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)

            return self.job_metrics.to_dict()

        except PersistenceError as e:
            self.job_metrics.record_failure(str(e), type(e).__name__)
            self.job_metrics.finalize()
            raise ProgressMergeJobError(
                f"Merge applied but not persisted: {e}", operation="persist", recoverable=True
            ) from e
        except Exception as e:
            logger.error("Progress merge job failed", error=str(e), error_type=type(e).__name__)
            self.job_metrics.record_failure(str(e), type(e).__name__)
            self.job_metrics.finalize()
            raise ProgressMergeJobError(f"Progress merge job failed: {e}", operation="run_once") from e

        finally:
            self.is_running = False

    async def run_forever(self) -> None:
        """Run merge passes until cancelled."""
        logger.info("Starting progress merge scheduler", interval_seconds=self.interval_seconds)

        while True:
            try:
                metrics = await self.run_once()
                if not metrics.get("skipped", False) and metrics["scanned_keys"]:
                    logger.info("Progress merge cycle completed", **metrics)
            except asyncio.CancelledError:
                logger.info("Progress merge scheduler stopped")
                raise
            except ProgressMergeJobError as e:
                # Persist failures already carry an error record from the store
                log = logger.warning if e.operation == "persist" else logger.error
                log(
                    "Progress merge cycle failed",
                    error=str(e),
                    operation=e.operation,
                    recoverable=e.recoverable,
                    consecutive_failures=self.job_metrics.consecutive_failures,
                )

            await asyncio.sleep(self.interval_seconds)

    def get_job_status(self) -> dict:
        return {
            "job_name": "progress_merge",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_seconds": self.interval_seconds,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    def health_check(self) -> dict:
        """
        Health check for the merge job.

        Unhealthy when the last successful run is older than twice the interval,
        or when the last MAX_CONSECUTIVE_FAILURES runs all failed (this also
        covers a job that has never succeeded).
        """
        now = datetime.now(UTC)
        overdue_threshold = timedelta(seconds=self.interval_seconds * 2)
        is_overdue = self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold
        consecutive_failures = self.job_metrics.consecutive_failures
        is_failing = consecutive_failures >= MAX_CONSECUTIVE_FAILURES

        health_status = {
            "healthy": not (is_overdue or is_failing),
            "service": "progress_merge_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
            "failures": self.job_metrics.failures,
            "consecutive_failures": consecutive_failures,
            "configuration": {
                "interval_seconds": self.interval_seconds,
                "max_consecutive_failures": MAX_CONSECUTIVE_FAILURES,
            },
        }

        if is_failing:
            health_status["warning"] = f"Last {consecutive_failures} merge runs failed"
        elif is_overdue:
            health_status["warning"] = (
                f"Job overdue by {(now - self.last_run_time).total_seconds():.1f} seconds"
            )

        return health_status
