"""
Durable snapshot storage for the progress store.

The store hands the backend its full state after every mutation and reads
it back once on startup. Backends only need to honour "persist current
state; reload it verbatim on restart", so the JSON file backend can be
replaced with an incremental or batched one without touching the store.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.infrastructure.observability.logging import get_logger
from app.models.domain.progress_domain import CommittedProgress, ProgressKey, Sample
from app.services.progress_errors import PersistenceError

logger = get_logger(__name__)

QUEUE_RECORD = "queue.json"
PROGRESS_RECORD = "progress.json"

_queue_adapter = TypeAdapter(dict[str, list[Sample]])
_progress_adapter = TypeAdapter(dict[str, CommittedProgress])


@dataclass
class ProgressSnapshot:
    """Full state of both collections."""

    queue: dict[ProgressKey, list[Sample]] = field(default_factory=dict)
    committed: dict[ProgressKey, CommittedProgress] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.queue and not self.committed


class SnapshotBackend(Protocol):
    def load(self) -> ProgressSnapshot: ...

    def save(self, snapshot: ProgressSnapshot) -> None: ...

    def describe(self) -> dict: ...


def encode_key(key: ProgressKey) -> str:
    """Length-prefixed encoding; injective for any pair of strings."""
    return f"{len(key.user_id)}:{key.user_id}{key.video_id}"


def decode_key(raw: str) -> ProgressKey:
    """Inverse of encode_key. Raises ValueError on malformed input."""
    length_text, sep, rest = raw.partition(":")
    if not sep or not length_text.isdigit():
        raise ValueError(f"Malformed progress key: {raw!r}")
    length = int(length_text)
    if length > len(rest):
        raise ValueError(f"Malformed progress key: {raw!r}")
    return ProgressKey(rest[:length], rest[length:])


class JsonFileBackend:
    """
    Two named JSON records in a data directory.

    - queue.json: encoded key -> list of pending samples
    - progress.json: encoded key -> committed record

    Each record is rewritten in full through a temp file and os.replace.
    """

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self.queue_path = self.data_dir / QUEUE_RECORD
        self.progress_path = self.data_dir / PROGRESS_RECORD
        self._ensure_data_directory()

    def _ensure_data_directory(self) -> None:
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Progress data directory created", data_dir=str(self.data_dir))

    def load(self) -> ProgressSnapshot:
        """
        Read both records.

        Missing or empty files load as empty collections.

        Raises:
            PersistenceError: If a record is unreadable or invalid
        """
        try:
            raw_queue = self._read(self.queue_path)
            raw_progress = self._read(self.progress_path)

            queue: dict[ProgressKey, list[Sample]] = {}
            if raw_queue:
                for raw_key, samples in _queue_adapter.validate_json(raw_queue).items():
                    key = decode_key(raw_key)
                    if any(sample.key != key for sample in samples):
                        raise ValueError(f"Sample does not belong to bucket {raw_key!r}")
                    queue[key] = samples

            committed: dict[ProgressKey, CommittedProgress] = {}
            if raw_progress:
                for raw_key, record in _progress_adapter.validate_json(raw_progress).items():
                    key = decode_key(raw_key)
                    if record.key != key:
                        raise ValueError(f"Record does not belong to key {raw_key!r}")
                    committed[key] = record

        except (OSError, ValueError, PydanticValidationError) as e:
            raise PersistenceError(
                f"Failed to load progress state: {e}", operation="load", recoverable=True
            ) from e

        return ProgressSnapshot(queue=queue, committed=committed)

    def save(self, snapshot: ProgressSnapshot) -> None:
        """
        Rewrite both records in full.

        Raises:
            PersistenceError: If either write fails
        """
        queue_obj = {encode_key(key): samples for key, samples in snapshot.queue.items()}
        progress_obj = {encode_key(key): record for key, record in snapshot.committed.items()}

        try:
            self._write_atomic(self.queue_path, _queue_adapter.dump_json(queue_obj, indent=2))
            self._write_atomic(
                self.progress_path, _progress_adapter.dump_json(progress_obj, indent=2)
            )
        except OSError as e:
            raise PersistenceError(
                f"Failed to save progress state: {e}", operation="save", recoverable=True
            ) from e

    def describe(self) -> dict:
        return {
            "backend": "json_file",
            "data_dir": str(self.data_dir),
        }

    @staticmethod
    def _read(path: Path) -> bytes:
        if not path.exists():
            return b""
        return path.read_bytes().strip()

    def _write_atomic(self, path: Path, payload: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
