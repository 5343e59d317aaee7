"""Pydantic schemas for GitHub Folder Uploader.

This module provides input validation, status reports and event models.
"""

from .base import SchemaBase
from .enums import BatchStatus, EventKind, JobStatus, OutputFormat
from .events import (
    ConnectedEvent,
    JobCompleteEvent,
    JobErrorEvent,
    JobEvent,
    JobStartEvent,
    ProgressEvent,
    RateLimitEvent,
    RateLimitExceededEvent,
    RateLimitResumedEvent,
    RateLimitWarningEvent,
)
from .github_api import GitHubCommitRef, GitHubContentFile, GitHubFileWrite
from .upload import (
    BatchConfig,
    BatchStats,
    BatchStatusReport,
    BatchSubmission,
    FileRecord,
    FileSummary,
    parse_repo_string,
)

__all__ = [
    # Base
    "SchemaBase",
    # Enums
    "BatchStatus",
    "EventKind",
    "JobStatus",
    "OutputFormat",
    # Events
    "ConnectedEvent",
    "JobCompleteEvent",
    "JobErrorEvent",
    "JobEvent",
    "JobStartEvent",
    "ProgressEvent",
    "RateLimitEvent",
    "RateLimitExceededEvent",
    "RateLimitResumedEvent",
    "RateLimitWarningEvent",
    # GitHub API
    "GitHubCommitRef",
    "GitHubContentFile",
    "GitHubFileWrite",
    # Uploads
    "BatchConfig",
    "BatchStats",
    "BatchStatusReport",
    "BatchSubmission",
    "FileRecord",
    "FileSummary",
    "parse_repo_string",
]
