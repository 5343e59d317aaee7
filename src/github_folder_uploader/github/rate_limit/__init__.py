"""Request quota tracking and backpressure for GitHub uploads.

This module watches quota headers on upload responses and pauses the
scheduler when the quota is exhausted.
"""

from .governor import RateLimitGovernor
from .schemas import QuotaSnapshot, QuotaState

__all__ = [
    "QuotaSnapshot",
    "QuotaState",
    "RateLimitGovernor",
]
