"""
Progress store: owns the pending-sample queue and the committed progress table.

Every public operation runs under a single lock, so enqueue and merge are
mutually exclusive and persistence writes are totally ordered. After each
mutation the full state is handed to the snapshot backend before the call
returns. A failed write is raised to the caller without rolling back the
in-memory state.
"""

import math
import threading
import time

from app.infrastructure.observability.logging import get_logger, log_merge_run
from app.models.domain.progress_domain import (
    CommittedProgress,
    MergeResult,
    ProgressKey,
    Sample,
    StoreStats,
    generate_sample_id,
    utc_now,
)
from app.services.merge_engine import merge_pending
from app.services.progress_errors import PersistenceError, SampleValidationError
from app.services.progress_persistence import ProgressSnapshot, SnapshotBackend

logger = get_logger(__name__)


class ProgressStore:
    """
    Sample-aggregation engine for (user, video) watch progress.

    Construct with a backend, then call load() once before serving.
    """

    def __init__(self, backend: SnapshotBackend):
        self.backend = backend
        self._queue: dict[ProgressKey, list[Sample]] = {}
        self._committed: dict[ProgressKey, CommittedProgress] = {}
        self._lock = threading.RLock()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """
        Initialize from durable storage.

        Unreadable state is logged and replaced with empty collections so
        startup never fails on corrupt data.
        """
        with self._lock:
            try:
                snapshot = self.backend.load()
            except PersistenceError as e:
                logger.warning(
                    "Progress state unreadable, starting empty",
                    error=str(e),
                    storage=self.backend.describe(),
                )
                snapshot = ProgressSnapshot()

            self._queue = snapshot.queue
            self._committed = snapshot.committed
            self._loaded = True

            logger.info(
                "Progress state loaded",
                pending_keys=len(self._queue),
                committed_keys=len(self._committed),
            )

    def enqueue(self, user_id: str, video_id: str, progress_seconds: float) -> Sample:
        """
        Append a sample for (user_id, video_id) and persist.

        Raises:
            SampleValidationError: Missing ids or a negative/non-finite value
            PersistenceError: The sample is queued in memory but the write failed
        """
        seconds = self._validate(user_id, video_id, progress_seconds)

        sample = Sample(
            id=generate_sample_id(),
            user_id=user_id,
            video_id=video_id,
            progress_seconds=seconds,
            created_at=utc_now(),
        )

        with self._lock:
            self._queue.setdefault(sample.key, []).append(sample)
            self._persist("enqueue")

        logger.debug(
            "Progress sample queued",
            user_id=user_id,
            video_id=video_id,
            progress_seconds=sample.progress_seconds,
            sample_id=sample.id,
        )
        return sample

    def get_committed(self, user_id: str, video_id: str) -> CommittedProgress | None:
        """Committed record for the pair, or None. Never reads the queue."""
        with self._lock:
            return self._committed.get(ProgressKey(user_id, video_id))

    def get_pending(self, user_id: str, video_id: str) -> list[Sample]:
        """Copy of the pending bucket for the pair."""
        with self._lock:
            return list(self._queue.get(ProgressKey(user_id, video_id), []))

    def run_merge(self) -> MergeResult:
        """
        Fold all pending samples into committed progress and persist.

        The lock is held for the whole scan-and-clear pass, so samples
        enqueued meanwhile wait and are picked up by the next pass.

        Raises:
            PersistenceError: Merge applied in memory but the write failed
        """
        start_time = time.time()
        with self._lock:
            result = merge_pending(self._queue, self._committed)
            self._persist(
                "run_merge",
                scanned_keys=result.scanned_keys,
                raised_keys=result.raised_keys,
            )

        log_merge_run(
            result.scanned_keys,
            result.raised_keys,
            round((time.time() - start_time) * 1000, 2),
        )
        return result

    def get_stats(self) -> StoreStats:
        with self._lock:
            return StoreStats(
                pending_keys=sum(1 for bucket in self._queue.values() if bucket),
                pending_samples=sum(len(bucket) for bucket in self._queue.values()),
                committed_keys=len(self._committed),
                storage=self.backend.describe(),
            )

    def reset(self) -> None:
        """Clear both collections and persist the empty state. Test/bootstrap only."""
        with self._lock:
            self._queue.clear()
            self._committed.clear()
            self._persist("reset")
        logger.warning("Progress store reset")

    def _persist(self, operation: str, **context) -> None:
        """Hand the full state to the backend. Failures are logged once here."""
        snapshot = ProgressSnapshot(
            queue={key: list(bucket) for key, bucket in self._queue.items()},
            committed=dict(self._committed),
        )
        try:
            self.backend.save(snapshot)
        except PersistenceError as e:
            logger.error(
                "Progress change applied, not persisted",
                operation=operation,
                error=str(e),
                **context,
            )
            raise
        except Exception as e:
            logger.error(
                "Progress change applied, not persisted",
                operation=operation,
                error=str(e),
                **context,
            )
            raise PersistenceError(
                f"Failed to persist progress state: {e}", operation=operation
            ) from e

    @staticmethod
    def _validate(user_id: str, video_id: str, progress_seconds: float) -> float:
        if not isinstance(user_id, str) or not user_id:
            raise SampleValidationError("userId must be a non-empty string", field="user_id")
        if not isinstance(video_id, str) or not video_id:
            raise SampleValidationError("videoId must be a non-empty string", field="video_id")
        if isinstance(progress_seconds, bool) or not isinstance(progress_seconds, (int, float)):
            raise SampleValidationError("progressSeconds must be a number", field="progress_seconds")
        try:
            seconds = float(progress_seconds)
        except OverflowError as e:
            raise SampleValidationError(
                "progressSeconds is too large", field="progress_seconds"
            ) from e
        if not math.isfinite(seconds) or seconds < 0:
            raise SampleValidationError(
                "progressSeconds must be a finite number >= 0", field="progress_seconds"
            )
        return seconds
