"""
Merge engine: folds pending samples into committed progress.

Each key's pending bucket is reduced to its maximum and compared against the
committed record; the record is only ever raised. Duplicated or out-of-order
samples fail to raise the maximum and are discarded with the rest of the
bucket, so no explicit deduplication is needed and repeated passes are no-ops.

Callers must hold the store lock for the whole pass.
"""

from collections.abc import Callable
from datetime import datetime

from app.models.domain.progress_domain import (
    CommittedProgress,
    MergeResult,
    ProgressKey,
    Sample,
    utc_now,
)


def merge_pending(
    queue: dict[ProgressKey, list[Sample]],
    committed: dict[ProgressKey, CommittedProgress],
    now: Callable[[], datetime] = utc_now,
) -> MergeResult:
    """
    Run one merge pass, mutating both collections in place.

    Args:
        queue: Pending samples bucketed by key; processed buckets are removed
        committed: Committed records by key; raised records are replaced

    Returns:
        MergeResult with counts of scanned and raised keys
    """
    result = MergeResult()

    # Stable key set for this pass
    for key in list(queue.keys()):
        bucket = queue.pop(key)
        if not bucket:
            continue

        result.scanned_keys += 1
        candidate = max(sample.progress_seconds for sample in bucket)

        current = committed.get(key)
        if current is None or candidate > current.furthest_seconds:
            committed[key] = CommittedProgress(
                user_id=key.user_id,
                video_id=key.video_id,
                furthest_seconds=candidate,
                updated_at=now(),
            )
            result.raised_keys += 1

    return result
