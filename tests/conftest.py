import time

import pytest

from app.services.progress_errors import PersistenceError
from app.services.progress_persistence import JsonFileBackend, ProgressSnapshot
from app.services.progress_store import ProgressStore


class FakeBackend:
    def __init__(self, snapshot: ProgressSnapshot | None = None):
        self.snapshot = snapshot or ProgressSnapshot()
        self.saves = 0
        self.fail_saves = False
        self.fail_loads = False
        self.save_delay = 0.0

    def load(self) -> ProgressSnapshot:
        if self.fail_loads:
            raise PersistenceError("corrupt state", operation="load")
        return ProgressSnapshot(
            queue={key: list(bucket) for key, bucket in self.snapshot.queue.items()},
            committed=dict(self.snapshot.committed),
        )

    def save(self, snapshot: ProgressSnapshot) -> None:
        if self.save_delay:
            time.sleep(self.save_delay)
        if self.fail_saves:
            raise PersistenceError("disk full", operation="save")
        self.saves += 1
        self.snapshot = snapshot

    def describe(self) -> dict:
        return {"backend": "fake"}


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def store(fake_backend):
    progress_store = ProgressStore(fake_backend)
    progress_store.load()
    return progress_store


@pytest.fixture
def json_store_factory(tmp_path):
    def _build() -> ProgressStore:
        progress_store = ProgressStore(JsonFileBackend(tmp_path / "data"))
        progress_store.load()
        return progress_store

    return _build
