"""Internal records for batches and upload jobs.

These are owned by BatchTracker and mutated only through it. The
scheduler reads jobs and reports outcomes but never changes batch state.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from github_folder_uploader.schemas.enums import BatchStatus, JobStatus

if TYPE_CHECKING:
    from github_folder_uploader.exceptions import UploadError


def _now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class JobTarget:
    """Where and how a job writes: the per-batch configuration handed to the scheduler."""

    owner: str
    repo: str
    branch: str
    message: str
    token: str = field(repr=False)
    credential_ref: str = "default"


@dataclass
class UploadJob:
    """One file's create-or-update operation.

    Identity and priority are fixed at creation. The status and result
    fields change afterwards, and the content is released (emptied) once
    the job can no longer run; ``size`` keeps the original length.
    """

    batch_id: str
    path: str
    content: bytes = field(repr=False)
    size: int
    priority: int
    id: str = field(default_factory=new_id)
    status: JobStatus = JobStatus.QUEUED
    queued_at: datetime = field(default_factory=_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    # Result fields
    sha: str | None = None
    url: str | None = None
    duration_ms: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    status_code: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.DONE, JobStatus.ERROR)


@dataclass(frozen=True)
class JobResult:
    """Successful write of one file."""

    job_id: str
    path: str
    sha: str | None
    url: str | None
    commit_sha: str | None
    duration_ms: int
    created: bool
    """True when the file did not exist before the write."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha": self.sha,
            "url": self.url,
            "commit_sha": self.commit_sha,
            "duration_ms": self.duration_ms,
            "created": self.created,
        }


@dataclass(frozen=True)
class JobOutcome:
    """What the scheduler reports once a job stops running."""

    job: UploadJob
    result: JobResult | None = None
    error: UploadError | None = None
    headers: dict[str, str] = field(default_factory=dict, repr=False)
    duration_ms: int = 0
    requeued: bool = False
    """True when a quota rejection put the job back in the queue instead of failing it."""

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class Batch:
    """One requested multi-file upload to a single repository branch."""

    owner: str
    repo: str
    branch: str
    base_path: str
    commit_message: str
    credential_ref: str
    total: int
    id: str = field(default_factory=new_id)
    status: BatchStatus = BatchStatus.PENDING
    completed: int = 0
    failed: int = 0
    created_at: datetime = field(default_factory=_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    job_ids: list[str] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)
    """Paths excluded at creation, mapped to the rejection reason."""

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return min(100.0, self.processed / self.total * 100)
