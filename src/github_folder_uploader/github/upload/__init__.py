"""Batch upload orchestration.

This module provides:
- BatchTracker: Owns batch and job state, applies job outcomes
- UploadService: Caller-facing facade with one scheduling lane per credential
"""

from .service import UploadLane, UploadService
from .tracker import BatchTracker, CleanupCallback

__all__ = [
    "BatchTracker",
    "CleanupCallback",
    "UploadLane",
    "UploadService",
]
