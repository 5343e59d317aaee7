"""Enums for batch state, job state and progress events."""

from enum import Enum, StrEnum


class BatchStatus(StrEnum):
    """Lifecycle of a batch.

    Transitions only move forward:
    pending -> uploading -> completed | cancelled | failed,
    and pending may go straight to cancelled or failed.
    """

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.CANCELLED, BatchStatus.FAILED)

    def can_become(self, target: "BatchStatus") -> bool:
        """Whether moving from this status to ``target`` is allowed."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.PENDING: frozenset(
        {BatchStatus.UPLOADING, BatchStatus.CANCELLED, BatchStatus.FAILED}
    ),
    BatchStatus.UPLOADING: frozenset(
        {BatchStatus.COMPLETED, BatchStatus.CANCELLED, BatchStatus.FAILED}
    ),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.CANCELLED: frozenset(),
    BatchStatus.FAILED: frozenset(),
}


class JobStatus(StrEnum):
    """State of a single file upload job."""

    QUEUED = "queued"
    ACTIVE = "active"
    DONE = "done"
    ERROR = "error"


class EventKind(StrEnum):
    """Kinds of progress events, named as they appear on the event stream."""

    CONNECTED = "connected"
    JOB_START = "jobStart"
    JOB_COMPLETE = "jobComplete"
    JOB_ERROR = "jobError"
    RATE_LIMIT_WARNING = "rateLimitWarning"
    RATE_LIMIT_EXCEEDED = "rateLimitExceeded"
    RATE_LIMIT_RESUMED = "rateLimitResumed"

    @property
    def is_rate_limit(self) -> bool:
        return self in (
            EventKind.RATE_LIMIT_WARNING,
            EventKind.RATE_LIMIT_EXCEEDED,
            EventKind.RATE_LIMIT_RESUMED,
        )


class OutputFormat(str, Enum):
    """Output format for CLI commands."""

    TEXT = "text"
    """Human-readable text output."""

    JSON = "json"
    """Machine-readable JSON output."""
