import itertools
from datetime import UTC, datetime

import pytest

from app.models.domain.progress_domain import CommittedProgress, ProgressKey, Sample
from app.services.merge_engine import merge_pending

FIXED_NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _sample(user_id: str, video_id: str, seconds: float, n: int = 0) -> Sample:
    return Sample(
        id=f"s-{n}",
        user_id=user_id,
        video_id=video_id,
        progress_seconds=seconds,
        created_at=FIXED_NOW,
    )


def _bucket(user_id: str, video_id: str, values: list[float]) -> list[Sample]:
    return [_sample(user_id, video_id, value, n) for n, value in enumerate(values)]


def test_max_selection_creates_record():
    key = ProgressKey("u1", "v1")
    queue = {key: _bucket("u1", "v1", [5, 12, 3])}
    committed: dict = {}

    result = merge_pending(queue, committed, now=lambda: FIXED_NOW)

    assert committed[key].furthest_seconds == 12
    assert committed[key].updated_at == FIXED_NOW
    assert result.scanned_keys == 1
    assert result.raised_keys == 1
    assert queue == {}


@pytest.mark.parametrize("order", list(itertools.permutations([12, 5, 3])))
def test_order_independence(order):
    key = ProgressKey("u1", "v1")
    queue = {key: _bucket("u1", "v1", list(order))}
    committed: dict = {}

    merge_pending(queue, committed)

    assert committed[key].furthest_seconds == 12


def test_lower_candidate_does_not_lower_committed():
    key = ProgressKey("u1", "v1")
    existing = CommittedProgress(
        user_id="u1", video_id="v1", furthest_seconds=50, updated_at=FIXED_NOW
    )
    queue = {key: _bucket("u1", "v1", [10, 20])}
    committed = {key: existing}

    result = merge_pending(queue, committed)

    assert committed[key] is existing
    assert result.scanned_keys == 1
    assert result.raised_keys == 0
    assert queue == {}


def test_equal_candidate_is_not_a_raise():
    key = ProgressKey("u1", "v1")
    existing = CommittedProgress(
        user_id="u1", video_id="v1", furthest_seconds=30, updated_at=FIXED_NOW
    )
    committed = {key: existing}

    result = merge_pending({key: _bucket("u1", "v1", [30, 30])}, committed)

    assert result.raised_keys == 0
    assert committed[key] is existing


def test_empty_bucket_is_skipped_and_dropped():
    key = ProgressKey("u1", "v1")
    queue = {key: []}
    committed: dict = {}

    result = merge_pending(queue, committed)

    assert result.scanned_keys == 0
    assert result.raised_keys == 0
    assert committed == {}
    assert queue == {}


def test_second_pass_is_noop():
    key = ProgressKey("u1", "v1")
    queue = {key: _bucket("u1", "v1", [7])}
    committed: dict = {}

    merge_pending(queue, committed)
    snapshot = dict(committed)
    second = merge_pending(queue, committed)

    assert second.raised_keys == 0
    assert second.scanned_keys == 0
    assert committed == snapshot


def test_keys_are_isolated():
    a_x = ProgressKey("userA", "videoX")
    b_x = ProgressKey("userB", "videoX")
    a_y = ProgressKey("userA", "videoY")
    queue = {
        a_x: _bucket("userA", "videoX", [100]),
        b_x: _bucket("userB", "videoX", [3]),
        a_y: _bucket("userA", "videoY", [42]),
    }
    committed: dict = {}

    result = merge_pending(queue, committed)

    assert result.scanned_keys == 3
    assert committed[a_x].furthest_seconds == 100
    assert committed[b_x].furthest_seconds == 3
    assert committed[a_y].furthest_seconds == 42
