"""Pydantic schemas for progress events.

Events serialize to camelCase JSON (``batchId``, ``filePath``, ...), the
shape consumed by the browser event stream.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import EventKind


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ProgressEvent(BaseModel):
    """Base class for every event published on the progress bus."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    kind: EventKind
    batch_id: str | None = Field(default=None, description="Batch the event belongs to")
    timestamp: datetime = Field(default_factory=_utc_now)

    def to_payload(self) -> dict[str, Any]:
        """JSON-compatible payload without the event kind."""
        return self.model_dump(mode="json", by_alias=True, exclude={"kind"})

    def to_json(self) -> str:
        """Full event, kind included, as a JSON string."""
        return self.model_dump_json(by_alias=True)


class ConnectedEvent(ProgressEvent):
    """First event on every new subscription."""

    kind: Literal[EventKind.CONNECTED] = EventKind.CONNECTED


class JobEvent(ProgressEvent):
    """Event scoped to a single job."""

    job_id: str
    file_path: str


class JobStartEvent(JobEvent):
    kind: Literal[EventKind.JOB_START] = EventKind.JOB_START


class JobCompleteEvent(JobEvent):
    kind: Literal[EventKind.JOB_COMPLETE] = EventKind.JOB_COMPLETE

    duration_ms: int = Field(ge=0)
    result: dict[str, Any] = Field(default_factory=dict, description="sha, url and commit sha")


class JobErrorEvent(JobEvent):
    kind: Literal[EventKind.JOB_ERROR] = EventKind.JOB_ERROR

    error: str = Field(description="Human-readable error message")
    code: str = Field(description="Stable error code")
    status: int | None = Field(default=None, description="HTTP status of the failed request")
    headers: dict[str, str] = Field(default_factory=dict)


class RateLimitEvent(ProgressEvent):
    """Quota event, delivered to every subscriber sharing the credential."""

    remaining: int | None = None
    limit: int | None = None
    reset_time: datetime | None = None


class RateLimitWarningEvent(RateLimitEvent):
    kind: Literal[EventKind.RATE_LIMIT_WARNING] = EventKind.RATE_LIMIT_WARNING

    reset_in_ms: int = Field(default=0, ge=0)


class RateLimitExceededEvent(RateLimitEvent):
    kind: Literal[EventKind.RATE_LIMIT_EXCEEDED] = EventKind.RATE_LIMIT_EXCEEDED

    wait_ms: int = Field(ge=0, description="How long the scheduler stays paused")


class RateLimitResumedEvent(RateLimitEvent):
    kind: Literal[EventKind.RATE_LIMIT_RESUMED] = EventKind.RATE_LIMIT_RESUMED
