"""Upload job scheduler with priority queue.

This module provides a priority-based async scheduler that runs file
upload jobs against the GitHub contents API.

Features:
- Stable priority queue (lower value first, FIFO among equals)
- Bounded concurrency
- Global pause/resume (in-flight jobs always finish)
- Per-job timeout, measured from the first start
- No retries: a failed job is reported once and stays failed. Jobs rejected
  by the rate limit can optionally go back into the queue instead, to run
  once the scheduler is resumed
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from github_folder_uploader.config import UploadConfig, get_settings
from github_folder_uploader.exceptions import (
    JobCancelledError,
    JobTimeoutError,
    RateLimitError,
    UploadError,
)
from github_folder_uploader.github.client import GitHubClient
from github_folder_uploader.github.exceptions import GitHubClientError, GitHubRateLimitError
from github_folder_uploader.models import (
    JobOutcome,
    JobResult,
    JobTarget,
    UploadJob,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]
JobStartCallback = Callable[[UploadJob], None]
JobDoneCallback = Callable[[JobOutcome], None]


@dataclass(order=True)
class QueuedJob:
    """A job waiting for a dispatch slot.

    Ordering is by (priority, sequence) for heapq, so equal priorities
    start in submission order.
    """

    priority: int = field(compare=True)
    sequence: int = field(compare=True)

    job: UploadJob = field(compare=False)
    target: JobTarget = field(compare=False)
    future: asyncio.Future[JobResult] | None = field(default=None, compare=False)
    deadline: float | None = field(default=None, compare=False)
    """Monotonic time after which the job fails, fixed when it first starts."""


class UploadScheduler:
    """Priority-based async upload scheduler with bounded concurrency.

    Usage:
        scheduler = UploadScheduler(concurrency=3)
        scheduler.on_job_done(lambda outcome: print(outcome.job.path, outcome.success))

        # Submit and wait for the result
        result = await scheduler.submit(job, target)

        # Or fire-and-forget; outcomes arrive through the callbacks
        scheduler.enqueue(job, target)

        await scheduler.shutdown()
    """

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        concurrency: int | None = None,
        job_timeout: float | None = None,
        config: UploadConfig | None = None,
        defer_rate_limited: bool = False,
    ) -> None:
        """Initialize the upload scheduler.

        Args:
            client_factory: Builds a GitHub client for a token (default GitHubClient)
            concurrency: Maximum simultaneously active jobs (default from config, 3)
            job_timeout: Seconds before a running job fails (default from config, 300)
            config: Upload configuration (uses settings if not provided)
            defer_rate_limited: Requeue jobs rejected by the rate limit instead of
                failing them (needs a governor that pauses the scheduler)
        """
        config = config or get_settings().upload
        self._client_factory: ClientFactory = client_factory or GitHubClient
        self._concurrency = concurrency or config.concurrency
        self._job_timeout = job_timeout or config.job_timeout_seconds
        self._defer_rate_limited = defer_rate_limited

        # Priority queue of jobs that have not started yet
        self._queue: list[QueuedJob] = []
        self._sequence = itertools.count()

        # In-flight view: job id -> start time
        self._active: dict[str, datetime] = {}
        self._tasks: set[asyncio.Task[None]] = set()  # Prevent task GC

        self._paused = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._clients: dict[str, Any] = {}

        # Callbacks
        self._start_callbacks: list[JobStartCallback] = []
        self._done_callbacks: list[JobDoneCallback] = []

        # Statistics
        self._total_submitted = 0
        self._total_completed = 0
        self._total_failed = 0
        self._rate_limit_hits = 0

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------
    def enqueue(self, job: UploadJob, target: JobTarget) -> str:
        """Add a job to the queue (fire-and-forget).

        Args:
            job: Job to run
            target: Repository, branch, message and token for the write

        Returns:
            The job id
        """
        self._push(job, target, future=None)
        return job.id

    async def submit(self, job: UploadJob, target: JobTarget) -> JobResult:
        """Queue a job and wait for its result.

        Returns:
            JobResult of the write

        Raises:
            UploadError: The remote read or write failed
            RateLimitError: The write was rejected because the quota is exhausted
            JobTimeoutError: The job ran longer than the job timeout
            JobCancelledError: The job was dropped before it started
        """
        future: asyncio.Future[JobResult] = asyncio.get_running_loop().create_future()
        self._push(job, target, future=future)
        return await future

    def _push(
        self,
        job: UploadJob,
        target: JobTarget,
        future: asyncio.Future[JobResult] | None,
    ) -> None:
        entry = QueuedJob(
            priority=job.priority,
            sequence=next(self._sequence),
            job=job,
            target=target,
            future=future,
        )
        heapq.heappush(self._queue, entry)
        self._total_submitted += 1
        self._idle.clear()

        logger.debug(
            "Enqueued job %s (%s, priority=%d, queue_size=%d)",
            job.id[:8],
            job.path,
            job.priority,
            len(self._queue),
        )
        self._dispatch()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------
    def _dispatch(self) -> None:
        """Start queued jobs while slots are free and the scheduler is not paused.

        Runs without awaiting, so queue and active count change atomically
        with respect to other tasks on the loop.
        """
        while not self._paused and self._queue and len(self._active) < self._concurrency:
            entry = heapq.heappop(self._queue)
            self._active[entry.job.id] = datetime.now(UTC)
            self._notify_start(entry.job)

            task = asyncio.create_task(self._run(entry))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, entry: QueuedJob) -> None:
        """Run one job under its deadline and report its outcome."""
        job = entry.job
        started = time.monotonic()
        if entry.deadline is None:
            entry.deadline = started + self._job_timeout
        outcome: JobOutcome | None = None
        requeue = False

        logger.debug("Executing job %s (%s)", job.id[:8], job.path)

        try:
            try:
                remaining = entry.deadline - started
                if remaining <= 0:
                    raise TimeoutError
                result, headers = await asyncio.wait_for(
                    self._perform(job, entry.target, started),
                    timeout=remaining,
                )
                outcome = JobOutcome(
                    job=job,
                    result=result,
                    headers=headers,
                    duration_ms=result.duration_ms,
                )
                self._total_completed += 1
            except Exception as e:
                error = self._to_upload_error(e)
                requeue = self._defer_rate_limited and isinstance(error, RateLimitError)
                outcome = JobOutcome(
                    job=job,
                    error=error,
                    headers=error.headers,
                    duration_ms=_elapsed_ms(started),
                    requeued=requeue,
                )
                if requeue:
                    logger.info("Job %s (%s) hit the rate limit, requeued", job.id[:8], job.path)
                else:
                    self._total_failed += 1
                    logger.warning("Job %s (%s) failed: %s", job.id[:8], job.path, error.message)
        finally:
            self._active.pop(job.id, None)
            if requeue:
                # Keeps its original sequence and deadline; listeners may pause first
                heapq.heappush(self._queue, entry)
            if outcome is not None:
                self._notify_done(outcome)
                if not requeue:
                    self._resolve(entry, outcome)
            elif entry.future is not None and not entry.future.done():
                entry.future.cancel()
            self._dispatch()
            self._update_idle()

    async def _perform(
        self,
        job: UploadJob,
        target: JobTarget,
        started: float,
    ) -> tuple[JobResult, dict[str, str]]:
        """Existence check followed by the create-or-update write."""
        client = self._client_for(target.token)

        existing_sha = await client.get_file_sha(
            target.owner, target.repo, job.path, ref=target.branch
        )
        written, headers = await client.put_file(
            target.owner,
            target.repo,
            job.path,
            job.content,
            message=target.message,
            branch=target.branch,
            sha=existing_sha,
        )

        result = JobResult(
            job_id=job.id,
            path=job.path,
            sha=written.content.sha if written.content else None,
            url=written.html_url,
            commit_sha=written.commit.sha,
            duration_ms=_elapsed_ms(started),
            created=existing_sha is None,
        )
        return result, headers

    def _to_upload_error(self, error: Exception) -> UploadError:
        """Map transport errors and timeouts onto job-level errors."""
        if isinstance(error, UploadError):
            return error
        if isinstance(error, TimeoutError):
            return JobTimeoutError(f"Job exceeded {self._job_timeout:g}s timeout")
        if isinstance(error, GitHubRateLimitError):
            self._rate_limit_hits += 1
            return RateLimitError(
                str(error),
                reset_at=error.reset_at,
                status_code=error.status_code,
                headers=error.headers,
            )
        if isinstance(error, GitHubClientError):
            return UploadError(str(error), status_code=error.status_code, headers=error.headers)
        logger.error("Unexpected job error: %r", error)
        return UploadError(str(error) or type(error).__name__)

    def _resolve(self, entry: QueuedJob, outcome: JobOutcome) -> None:
        future = entry.future
        if future is None or future.done():
            return
        if outcome.error is not None:
            future.set_exception(outcome.error)
        else:
            future.set_result(outcome.result)  # type: ignore[arg-type]

    def _client_for(self, token: str) -> Any:
        client = self._clients.get(token)
        if client is None:
            client = self._client_factory(token)
            self._clients[token] = client
        return client

    # -------------------------------------------------------------------------
    # Flow Control
    # -------------------------------------------------------------------------
    def pause(self) -> None:
        """Stop starting new jobs. Jobs already running are not interrupted."""
        if not self._paused:
            self._paused = True
            logger.info(
                "Scheduler paused (queued=%d, active=%d)", len(self._queue), len(self._active)
            )

    def resume(self) -> None:
        """Resume dispatching queued jobs."""
        if self._paused:
            self._paused = False
            logger.info("Scheduler resumed (queued=%d)", len(self._queue))
        self._dispatch()

    def clear(self) -> int:
        """Drop every queued job. Returns the number of jobs dropped."""
        dropped = self._drop(lambda entry: True)
        self._total_submitted = 0
        self._total_completed = 0
        self._total_failed = 0
        self._rate_limit_hits = 0
        return dropped

    def discard(self, batch_id: str) -> int:
        """Drop the queued jobs of one batch. Returns the number of jobs dropped."""
        return self._drop(lambda entry: entry.job.batch_id == batch_id)

    def _drop(self, predicate: Callable[[QueuedJob], bool]) -> int:
        dropped = [entry for entry in self._queue if predicate(entry)]
        if not dropped:
            return 0

        self._queue = [entry for entry in self._queue if not predicate(entry)]
        heapq.heapify(self._queue)

        for entry in dropped:
            if entry.future is not None and not entry.future.done():
                entry.future.set_exception(
                    JobCancelledError(f"Job for {entry.job.path} was cancelled before it started")
                )

        logger.info("Dropped %d queued job(s)", len(dropped))
        self._update_idle()
        return len(dropped)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until no job is queued or running.

        Raises:
            TimeoutError: If the scheduler is still busy after ``timeout`` seconds
        """
        await asyncio.wait_for(self._idle.wait(), timeout)

    async def shutdown(self, wait: bool = True, timeout: float = 30.0) -> None:
        """Stop the scheduler.

        Args:
            wait: If True, wait for queued and running jobs to finish first
            timeout: Maximum seconds to wait
        """
        if wait and not self.is_idle:
            logger.info("Waiting for %d pending jobs...", self.pending_count())
            try:
                await self.wait_idle(timeout)
            except TimeoutError:
                logger.warning("Shutdown timed out with %d pending jobs", self.pending_count())

        self._drop(lambda entry: True)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        self._clients.clear()

        logger.info(
            "Upload scheduler stopped (completed=%d, failed=%d)",
            self._total_completed,
            self._total_failed,
        )

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------
    def on_job_start(self, callback: JobStartCallback) -> None:
        """Register a callback fired when a job leaves the queue and starts."""
        self._start_callbacks.append(callback)

    def on_job_done(self, callback: JobDoneCallback) -> None:
        """Register a callback fired with the outcome of every finished job."""
        self._done_callbacks.append(callback)

    def remove_callback(self, callback: Callable[..., None]) -> bool:
        """Remove a previously registered callback.

        Returns:
            True if callback was found and removed
        """
        for callbacks in (self._start_callbacks, self._done_callbacks):
            if callback in callbacks:
                callbacks.remove(callback)  # type: ignore[arg-type]
                return True
        return False

    def _notify_start(self, job: UploadJob) -> None:
        for callback in self._start_callbacks:
            try:
                callback(job)
            except Exception as e:
                logger.error("Job start callback failed for %s: %s", job.id[:8], e)

    def _notify_done(self, outcome: JobOutcome) -> None:
        for callback in self._done_callbacks:
            try:
                callback(outcome)
            except Exception as e:
                logger.error("Job done callback failed for %s: %s", outcome.job.id[:8], e)

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    def pending_count(self) -> int:
        """Jobs queued or running."""
        return len(self._queue) + len(self._active)

    @property
    def queue_size(self) -> int:
        """Number of jobs waiting to start."""
        return len(self._queue)

    @property
    def active_count(self) -> int:
        """Number of jobs currently running."""
        return len(self._active)

    @property
    def active_jobs(self) -> dict[str, datetime]:
        """Snapshot of running job ids and their start times."""
        return dict(self._active)

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_idle(self) -> bool:
        """True if no queued or running jobs."""
        return not self._queue and not self._active

    def _update_idle(self) -> None:
        if self.is_idle:
            self._idle.set()
        else:
            self._idle.clear()

    def get_stats(self) -> dict[str, int | bool]:
        """Get scheduler statistics.

        Returns:
            Dict with queue_size, active_jobs, totals and pause state
        """
        return {
            "queue_size": len(self._queue),
            "active_jobs": len(self._active),
            "is_paused": self._paused,
            "is_idle": self.is_idle,
            "concurrency": self._concurrency,
            "total_submitted": self._total_submitted,
            "total_completed": self._total_completed,
            "total_failed": self._total_failed,
            "rate_limit_hits": self._rate_limit_hits,
        }


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
