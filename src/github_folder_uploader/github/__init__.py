"""GitHub upload module.

This module provides:
- GitHubClient: Async GitHub contents API client
- Scheduling: UploadScheduler, ProgressBus, Subscription
- Rate limit backpressure: RateLimitGovernor, QuotaSnapshot, QuotaState
- Batch uploads: BatchTracker, UploadService
"""

from .client import GitHubClient
from .exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from .pacing import ProgressBus, Subscription, UploadScheduler, format_sse
from .rate_limit import QuotaSnapshot, QuotaState, RateLimitGovernor
from .upload import BatchTracker, UploadService

__all__ = [
    # Client
    "GitHubClient",
    # Exceptions
    "GitHubAuthenticationError",
    "GitHubClientError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    # Rate limit backpressure
    "QuotaSnapshot",
    "QuotaState",
    "RateLimitGovernor",
    # Scheduling and progress
    "ProgressBus",
    "Subscription",
    "UploadScheduler",
    "format_sse",
    # Batch uploads
    "BatchTracker",
    "UploadService",
]
