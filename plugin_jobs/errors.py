# plugin_jobs/errors.py
"""
Error taxonomy for the plugin job queue.

Store-level errors (corrupt file, failed write) degrade gracefully inside the
queue. Per-job errors (illegal transition, cancel on a finished job) are
surfaced to the caller. Executor errors are captured into the job record by
the worker and never leave the worker loop.
"""

from typing import Any


class JobQueueError(Exception):
    """Base class for all job queue errors."""


class StoreCorruptError(JobQueueError):
    """The persisted job collection cannot be deserialized."""

    def __init__(self, location: str, reason: str) -> None:
        self.location = location
        self.reason = reason
        super().__init__(f"Job store at {location} is unreadable: {reason}")


class StoreWriteError(JobQueueError):
    """Replacing the persisted job collection failed; the previous version is intact."""


class JobNotFoundError(JobQueueError, KeyError):
    """No job with the given ID exists (never created, or pruned)."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(job_id)

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class InvalidTransitionError(JobQueueError):
    """The requested status change is not allowed by the job state machine."""

    def __init__(self, job_id: str, current: str, requested: str, reason: str | None = None) -> None:
        self.job_id = job_id
        self.current = current
        self.requested = requested
        message = f"Job {job_id}: cannot transition {current} -> {requested}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class NotCancellableError(JobQueueError):
    """Cancellation was requested for a job that already finished."""

    def __init__(self, job_id: str, status: str) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__(f"Cannot cancel job {job_id} in {status} state")


class ExecutorError(JobQueueError):
    """
    Failure raised by an operation executor.

    Executors may attach structured ``details`` which the worker merges into
    the job's ``error`` field.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PersistenceWriteWarning(UserWarning):
    """A best-effort write of the job collection failed and will be retried."""
