# models/domain/progress_domain.py
"""
Watch-progress domain models.

Samples are raw playback positions reported by the player; committed
progress is the furthest position ever folded in for a (user, video) pair.
"""

import random
import string
import time
from datetime import UTC, datetime
from typing import NamedTuple

from pydantic import BaseModel, Field

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ProgressKey(NamedTuple):
    """Composite (user, video) key used directly as a mapping key."""

    user_id: str
    video_id: str


def utc_now() -> datetime:
    return datetime.now(UTC)


def generate_sample_id() -> str:
    """Epoch milliseconds plus a short random suffix; for debugging, not ordering."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"{int(time.time() * 1000)}-{suffix}"


class Sample(BaseModel):
    """One reported playback position (immutable once stored)."""

    model_config = {"frozen": True}

    id: str
    user_id: str
    video_id: str
    progress_seconds: float = Field(..., ge=0)
    created_at: datetime

    @property
    def key(self) -> ProgressKey:
        return ProgressKey(self.user_id, self.video_id)


class CommittedProgress(BaseModel):
    """Durable furthest-reached record for a (user, video) pair."""

    model_config = {"frozen": True}

    user_id: str
    video_id: str
    furthest_seconds: float = Field(..., ge=0)
    updated_at: datetime

    @property
    def key(self) -> ProgressKey:
        return ProgressKey(self.user_id, self.video_id)


class MergeResult(BaseModel):
    """Outcome of one merge pass."""

    scanned_keys: int = 0
    raised_keys: int = 0


class StoreStats(BaseModel):
    """Read-only diagnostic snapshot of the store."""

    pending_keys: int
    pending_samples: int
    committed_keys: int
    storage: dict = Field(default_factory=dict)
