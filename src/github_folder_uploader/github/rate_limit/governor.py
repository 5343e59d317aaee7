"""Quota-aware backpressure for the upload scheduler.

This module watches the quota headers of every finished upload job and
applies backpressure to the scheduler that ran it.

Key Features:
- Passive tracking from response headers (zero API cost)
- Low-quota warnings below a configurable threshold
- Pause on quota exhaustion, automatic resume after the reset time
- At most one pause/resume cycle in flight at a time
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from github_folder_uploader.config import RateLimitConfig, get_settings
from github_folder_uploader.exceptions import RateLimitError
from github_folder_uploader.schemas.events import (
    ProgressEvent,
    RateLimitExceededEvent,
    RateLimitResumedEvent,
    RateLimitWarningEvent,
)

from .schemas import QuotaSnapshot, QuotaState

if TYPE_CHECKING:
    from github_folder_uploader.github.pacing.scheduler import UploadScheduler
    from github_folder_uploader.models import JobOutcome

logger = logging.getLogger(__name__)

EmitCallback = Callable[[ProgressEvent], Awaitable[None] | None]

_QUOTA_DENIED_STATUSES = frozenset({403, 429})


class RateLimitGovernor:
    """Pauses and resumes one scheduler based on observed quota.

    Usage:
        scheduler = UploadScheduler()
        governor = RateLimitGovernor(scheduler, emit=bus.broadcast)
        scheduler.on_job_done(governor.observe)

        # Later
        print(governor.to_dict())
        await governor.close()

    A second exhaustion signal while the scheduler is already paused is
    ignored; the pending resume task decides when dispatch restarts.
    """

    def __init__(
        self,
        scheduler: UploadScheduler,
        config: RateLimitConfig | None = None,
        emit: EmitCallback | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the governor.

        Args:
            scheduler: Scheduler to pause and resume
            config: Rate limit configuration (uses settings if not provided)
            emit: Receives rate limit events (warning, exceeded, resumed)
            clock: Returns the current UTC time (default datetime.now)
        """
        self._scheduler = scheduler
        self._config = config or get_settings().rate_limit
        self._emit_callback = emit
        self._clock = clock or (lambda: datetime.now(UTC))

        self._state = QuotaState()
        self._resume_task: asyncio.Task[None] | None = None
        self._resume_scheduler = True
        self._emit_tasks: set[asyncio.Task[Any]] = set()

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------
    def observe(self, outcome: JobOutcome) -> None:
        """Inspect the quota metadata of one job outcome.

        Intended to be registered with ``UploadScheduler.on_job_done``.
        """
        snapshot = QuotaSnapshot.from_response_headers(outcome.headers)
        if self._config.track_from_headers and snapshot.has_quota_info:
            self._state.apply(snapshot)

        if self._is_exhausted(outcome, snapshot):
            reset_at = snapshot.reset_at
            if isinstance(outcome.error, RateLimitError) and outcome.error.reset_at:
                reset_at = outcome.error.reset_at
            self._handle_exhausted(reset_at or self._state.reset_at, snapshot)
        elif snapshot.remaining is not None and snapshot.remaining < self._config.warning_threshold:
            self._warn(snapshot)

    def _is_exhausted(self, outcome: JobOutcome, snapshot: QuotaSnapshot) -> bool:
        if outcome.success:
            return False
        if isinstance(outcome.error, RateLimitError):
            return True
        status = outcome.error.status_code if outcome.error is not None else None
        return status in _QUOTA_DENIED_STATUSES and snapshot.is_exhausted

    def _warn(self, snapshot: QuotaSnapshot) -> None:
        self._state.warning_count += 1
        logger.warning(
            "Rate limit low: %s/%s requests remaining",
            snapshot.remaining,
            snapshot.limit,
        )
        self._emit(
            RateLimitWarningEvent(
                remaining=snapshot.remaining,
                limit=snapshot.limit,
                reset_time=snapshot.reset_at,
                reset_in_ms=snapshot.ms_until_reset(self._clock()),
            )
        )

    # -------------------------------------------------------------------------
    # Pause / Resume Cycle
    # -------------------------------------------------------------------------
    def compute_wait_ms(self, reset_at: datetime | None) -> int:
        """Milliseconds to stay paused for a quota that resets at ``reset_at``.

        Unknown reset times fall back to the minimum wait.
        """
        if reset_at is None:
            return self._config.min_wait_ms
        until_reset = int((reset_at - self._clock()).total_seconds() * 1000)
        return max(self._config.min_wait_ms, until_reset + self._config.reset_buffer_ms)

    def _handle_exhausted(self, reset_at: datetime | None, snapshot: QuotaSnapshot) -> None:
        if self._state.paused:
            logger.debug("Quota exhaustion reported while already paused, ignoring")
            return

        wait_ms = self.compute_wait_ms(reset_at)
        self._state.paused = True
        self._state.exhaustion_count += 1
        # A pause the caller made before the quota ran out outlives the cycle
        self._resume_scheduler = not self._scheduler.is_paused
        self._scheduler.pause()

        logger.warning(
            "Rate limit exceeded, pausing uploads for %.1fs (reset at %s)",
            wait_ms / 1000,
            reset_at.isoformat() if reset_at else "unknown",
        )
        self._emit(
            RateLimitExceededEvent(
                remaining=snapshot.remaining if snapshot.remaining is not None else 0,
                limit=snapshot.limit,
                reset_time=reset_at,
                wait_ms=wait_ms,
            )
        )
        self._resume_task = asyncio.create_task(self._resume_after(wait_ms))

    async def _resume_after(self, wait_ms: int) -> None:
        await asyncio.sleep(wait_ms / 1000)
        self._resume_task = None
        self._state.paused = False
        if self._resume_scheduler:
            self._scheduler.resume()
            logger.info("Rate limit wait elapsed, uploads resumed")
        else:
            logger.info("Rate limit wait elapsed, scheduler left paused by its owner")
        self._emit(
            RateLimitResumedEvent(
                remaining=self._state.remaining,
                limit=self._state.limit,
                reset_time=self._state.reset_at,
            )
        )

    def _emit(self, event: ProgressEvent) -> None:
        if self._emit_callback is None:
            return
        try:
            result = self._emit_callback(event)
            if asyncio.iscoroutine(result):
                task = asyncio.create_task(result)
                self._emit_tasks.add(task)
                task.add_done_callback(self._emit_tasks.discard)
        except Exception as e:
            logger.error("Rate limit event callback failed for %s: %s", event.kind, e)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def close(self) -> None:
        """Cancel a pending resume task. The scheduler stays in its current state."""
        task = self._resume_task
        self._resume_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    @property
    def state(self) -> QuotaState:
        """Copy of the current quota state."""
        return self._state.model_copy()

    @property
    def is_paused(self) -> bool:
        return self._state.paused

    @property
    def has_pending_resume(self) -> bool:
        return self._resume_task is not None and not self._resume_task.done()

    def to_dict(self) -> dict[str, Any]:
        """Export current state as dictionary (for logging/metrics).

        Returns:
            Dict with quota values, pause flag and counters
        """
        state = self._state
        percent = state.remaining_percent
        return {
            "remaining": state.remaining,
            "limit": state.limit,
            "remaining_percent": round(percent, 2) if percent is not None else None,
            "reset_at": state.reset_at.isoformat() if state.reset_at else None,
            "paused": state.paused,
            "exhaustion_count": state.exhaustion_count,
            "warning_count": state.warning_count,
        }
