"""Job scheduling and progress distribution for batch uploads.

Components:
- UploadScheduler: Priority queue with bounded concurrency and pause/resume
- ProgressBus: Per-batch event subscriptions
"""

from .progress import ProgressBus, Subscription, format_sse
from .scheduler import QueuedJob, UploadScheduler

__all__ = [
    # Progress distribution
    "ProgressBus",
    "Subscription",
    "format_sse",
    # Scheduling
    "QueuedJob",
    "UploadScheduler",
]
