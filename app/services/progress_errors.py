"""
Error taxonomy for the progress store.

SampleValidationError is raised before any state mutation. PersistenceError
covers durable reads and writes; a failed write leaves in-memory state
advanced, so callers must treat it as "maybe durable, maybe not".
"""


class ProgressStoreError(Exception):
    """Base exception for progress store operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class SampleValidationError(ProgressStoreError):
    """Malformed or out-of-range sample input."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, operation="enqueue", recoverable=False)
        self.field = field


class PersistenceError(ProgressStoreError):
    """Durable read or write failed."""
