"""Pydantic schemas for batch upload requests and status reports."""

from datetime import datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .base import SchemaBase


class FileRecord(BaseModel):
    """One candidate file handed over by the extraction step."""

    path: str = Field(description="Path relative to the upload root")
    content: bytes = Field(repr=False, description="Raw file content")
    size: int = Field(default=-1, description="Size in bytes (derived from content if omitted)")

    @model_validator(mode="after")
    def _fill_size(self) -> Self:
        if self.size < 0:
            self.size = len(self.content)
        return self


class BatchConfig(SchemaBase):
    """Target repository and commit settings for one batch.

    ``branch`` and ``commit_message`` fall back to the configured defaults
    when left empty.
    """

    owner: str = Field(default="", description="Repository owner (org or user)")
    repo: str = Field(default="", description="Repository name")
    branch: str = Field(default="", description="Target branch")
    base_path: str = Field(default="", description="Directory prefix inside the repository")
    commit_message: str = Field(default="", description="Commit message for every file")
    credential_ref: str = Field(
        default="default",
        description="Opaque reference resolved to a token at batch start",
    )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class FileSummary(BaseModel):
    """File entry echoed back to the caller after validation."""

    path: str
    size: int
    type: str = "file"


class BatchSubmission(BaseModel):
    """Result of submitting a batch."""

    batch_id: str
    file_count: int
    total_size_bytes: int
    files: list[FileSummary] = Field(default_factory=list)
    rejected: dict[str, str] = Field(
        default_factory=dict,
        description="Rejected paths mapped to the rejection reason",
    )


class BatchStats(BaseModel):
    """Completion counters of a batch."""

    total: int = Field(ge=0)
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)

    @property
    def processed(self) -> int:
        return self.completed + self.failed


class BatchStatusReport(BaseModel):
    """Synchronous view of a batch, used to reconcile before subscribing."""

    model_config = ConfigDict(use_enum_values=True)

    batch_id: str
    status: str
    percentage: float = Field(ge=0.0, le=100.0)
    stats: BatchStats
    owner: str
    repo: str
    branch: str
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


def parse_repo_string(repo: str) -> tuple[str, str]:
    """Split ``owner/name`` into its two parts.

    Raises:
        ValueError: If the string is not exactly two non-empty parts
    """
    parts = repo.strip().split("/")
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise ValueError(f"Invalid repository {repo!r}, expected owner/name")
    return parts[0].strip(), parts[1].strip()
