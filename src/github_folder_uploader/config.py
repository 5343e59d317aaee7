"""Configuration settings for GitHub Folder Uploader."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitConfig(BaseModel):
    """Configuration for the rate limit governor.

    Controls when low-quota warnings fire and how long the scheduler
    stays paused after the quota is exhausted.
    """

    warning_threshold: int = Field(
        default=10,
        ge=0,
        description="Emit a warning when remaining requests drop below this value",
    )
    reset_buffer_ms: int = Field(
        default=1000,
        ge=0,
        description="Milliseconds added to the reset time before resuming",
    )
    min_wait_ms: int = Field(
        default=1000,
        ge=0,
        description="Minimum pause in milliseconds after quota exhaustion",
    )
    track_from_headers: bool = Field(
        default=True,
        description="Passively track quota from response headers",
    )


class UploadConfig(BaseModel):
    """Configuration for batch uploads and the job scheduler."""

    # Concurrency
    concurrency: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Maximum number of simultaneously active upload jobs",
    )
    job_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Maximum seconds a single job may run before it fails",
    )

    # Batch limits
    max_files_per_batch: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of files accepted in one batch",
    )
    max_batch_bytes: int = Field(
        default=100 * 1024 * 1024,
        ge=1,
        description="Maximum aggregate size of one batch in bytes",
    )

    # Defaults
    default_branch: str = Field(default="main", description="Branch used when none is given")
    default_commit_message: str = Field(
        default="Upload files via GitHub Folder Uploader",
        description="Commit message used when none is given",
    )

    # Progress delivery
    subscriber_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Events buffered per subscriber before new events are dropped",
    )


class PathConfig(BaseModel):
    """Rules applied by the path validator."""

    max_length: int = Field(default=500, ge=1, description="Maximum path length")
    blocked_extensions: frozenset[str] = Field(
        default=frozenset(
            {".exe", ".dll", ".so", ".dylib", ".bat", ".cmd", ".sh", ".bin", ".sys"}
        ),
        description="Lower-case file extensions that are never uploaded",
    )
    blocked_segments: frozenset[str] = Field(
        default=frozenset({".git"}),
        description="Directory names rejected anywhere in a path",
    )
    blocked_prefixes: frozenset[str] = Field(
        default=frozenset({"node_modules", ".idea", ".vscode"}),
        description="Top-level directories that are never uploaded",
    )
    blocked_filenames: frozenset[str] = Field(
        default=frozenset({"package-lock.json", "yarn.lock"}),
        description="File names that are never uploaded",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # GitHub API
    # --------------------------------------------------------------------------
    github_token: str = Field(
        default="",
        description="GitHub token used by the default credential",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Uploads, Rate Limiting & Paths
    # --------------------------------------------------------------------------
    upload: UploadConfig = Field(
        default_factory=UploadConfig,
        description="Batch upload and scheduler configuration",
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Rate limit governor configuration",
    )
    paths: PathConfig = Field(
        default_factory=PathConfig,
        description="Path validation rules",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
