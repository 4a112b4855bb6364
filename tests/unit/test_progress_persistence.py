import json

import pytest

from app.models.domain.progress_domain import ProgressKey
from app.services.progress_errors import PersistenceError
from app.services.progress_persistence import (
    PROGRESS_RECORD,
    QUEUE_RECORD,
    JsonFileBackend,
    ProgressSnapshot,
    decode_key,
    encode_key,
)


@pytest.mark.parametrize(
    "key",
    [
        ProgressKey("user", "video"),
        ProgressKey("a-b", "c"),
        ProgressKey("a", "b-c"),
        ProgressKey("12:3", ":4"),
        ProgressKey("", ""),
        ProgressKey("üser", "vídeo"),
    ],
)
def test_key_encoding_roundtrip(key):
    assert decode_key(encode_key(key)) == key


def test_key_encoding_is_injective_for_separator_ids():
    assert encode_key(ProgressKey("a-b", "c")) != encode_key(ProgressKey("a", "b-c"))
    assert encode_key(ProgressKey("a:", "b")) != encode_key(ProgressKey("a", ":b"))


@pytest.mark.parametrize("raw", ["no-colon", "x:abc", "10:short", "-1:abc"])
def test_decode_key_rejects_malformed(raw):
    with pytest.raises(ValueError):
        decode_key(raw)


def test_data_directory_created(tmp_path):
    data_dir = tmp_path / "nested" / "data"

    JsonFileBackend(data_dir)

    assert data_dir.is_dir()


def test_missing_and_empty_files_load_empty(tmp_path):
    backend = JsonFileBackend(tmp_path)
    assert backend.load().is_empty()

    (tmp_path / QUEUE_RECORD).write_text("")
    (tmp_path / PROGRESS_RECORD).write_text("{}")
    assert backend.load().is_empty()


def test_cold_start_restores_committed_and_pending(json_store_factory):
    first = json_store_factory()
    first.enqueue("a-b", "c", 10)
    first.enqueue("a", "b-c", 25)
    first.run_merge()
    first.enqueue("a-b", "c", 40)
    committed_before = first.get_committed("a", "b-c")
    pending_before = first.get_pending("a-b", "c")

    restarted = json_store_factory()

    assert restarted.get_committed("a", "b-c") == committed_before
    assert restarted.get_committed("a-b", "c").furthest_seconds == 10
    assert restarted.get_pending("a-b", "c") == pending_before

    restarted.run_merge()
    assert restarted.get_committed("a-b", "c").furthest_seconds == 40


def test_files_are_plain_json_keyed_by_composite_key(tmp_path):
    backend = JsonFileBackend(tmp_path)
    store_snapshot = ProgressSnapshot()
    backend.save(store_snapshot)

    assert json.loads((tmp_path / QUEUE_RECORD).read_text()) == {}
    assert json.loads((tmp_path / PROGRESS_RECORD).read_text()) == {}


def test_saved_queue_layout(json_store_factory, tmp_path):
    store = json_store_factory()
    sample = store.enqueue("u1", "v1", 3.5)

    data = json.loads((tmp_path / "data" / QUEUE_RECORD).read_text())

    assert list(data) == ["2:u1v1"]
    assert data["2:u1v1"][0]["id"] == sample.id
    assert data["2:u1v1"][0]["progress_seconds"] == 3.5


def test_no_temp_files_left_behind(json_store_factory, tmp_path):
    store = json_store_factory()
    store.enqueue("u", "v", 1)
    store.run_merge()

    leftovers = [p.name for p in (tmp_path / "data").iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


@pytest.mark.parametrize(
    "record, content",
    [
        (QUEUE_RECORD, "{not json"),
        (PROGRESS_RECORD, "[1, 2, 3]"),
        (PROGRESS_RECORD, '{"bad-key": {"user_id": "u", "video_id": "v", '
         '"furthest_seconds": 1, "updated_at": "2026-01-01T00:00:00Z"}}'),
        (PROGRESS_RECORD, '{"1:uv": {"user_id": "u", "video_id": "v", '
         '"furthest_seconds": -5, "updated_at": "2026-01-01T00:00:00Z"}}'),
        (PROGRESS_RECORD, '{"1:uv": {"user_id": "x", "video_id": "v", '
         '"furthest_seconds": 5, "updated_at": "2026-01-01T00:00:00Z"}}'),
    ],
)
def test_corrupt_records_raise_persistence_error(tmp_path, record, content):
    backend = JsonFileBackend(tmp_path)
    (tmp_path / record).write_text(content)

    with pytest.raises(PersistenceError):
        backend.load()


def test_store_survives_corrupt_record(json_store_factory, tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / PROGRESS_RECORD).write_text("\x00\x01garbage")

    store = json_store_factory()

    stats = store.get_stats()
    assert stats.pending_samples == 0
    assert stats.committed_keys == 0

    # Next mutation overwrites the corrupt record with valid state
    store.enqueue("u", "v", 2)
    store.run_merge()
    assert json_store_factory().get_committed("u", "v").furthest_seconds == 2


def test_write_failure_raises_persistence_error(tmp_path, monkeypatch):
    backend = JsonFileBackend(tmp_path)

    def _fail(src, dst):
        raise OSError("read-only filesystem")

    monkeypatch.setattr("app.services.progress_persistence.os.replace", _fail)

    with pytest.raises(PersistenceError) as exc_info:
        backend.save(ProgressSnapshot())

    assert exc_info.value.operation == "save"
    assert [p for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []
