"""Domain errors for batch uploads.

Every error surfaced to callers carries a stable ``code`` and a
human-readable message.
"""

from datetime import datetime
from typing import Any


class UploaderError(Exception):
    """Base exception for all upload errors."""

    code = "UPLOADER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Serialize as ``{"code", "message"}`` for API responses and events."""
        return {"code": self.code, "message": self.message}


class BatchValidationError(UploaderError):
    """Raised when a batch request is invalid. No jobs are created."""

    code = "VALIDATION_ERROR"


class BatchNotFoundError(UploaderError):
    """Raised when a batch id is unknown."""

    code = "NOT_FOUND"


class AuthError(UploaderError):
    """Raised when a credential cannot be turned into a token."""

    code = "AUTH_ERROR"


class PathError(UploaderError):
    """Raised when a single file path fails validation."""

    code = "PATH_ERROR"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid path {path!r}: {reason}")
        self.path = path
        self.reason = reason


class UploadError(UploaderError):
    """Raised when the remote write for one job fails."""

    code = "UPLOAD_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers or {}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status_code
        return data


class RateLimitError(UploadError):
    """Raised when a job is rejected because the request quota is exhausted."""

    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        reset_at: datetime | None = None,
        status_code: int | None = 403,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, headers=headers)
        self.reset_at = reset_at


class JobTimeoutError(UploadError):
    """Raised when a job runs longer than its allotted time."""

    code = "TIMEOUT"


class JobCancelledError(UploaderError):
    """Raised for a queued job that was dropped before it started."""

    code = "CANCELLED"
