"""Batch and job state tracking.

BatchTracker is the single owner of every Batch and UploadJob record.
The scheduler reports job starts and outcomes through callbacks; the
tracker turns them into counter updates, status transitions and
progress events.

Counter updates for one batch happen under that batch's lock, so
concurrent completions never lose an increment.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from github_folder_uploader.config import UploadConfig, get_settings
from github_folder_uploader.exceptions import (
    BatchNotFoundError,
    BatchValidationError,
    UploaderError,
)
from github_folder_uploader.logging import bind_batch, bind_job, get_logger
from github_folder_uploader.models import Batch, JobOutcome, JobTarget, UploadJob
from github_folder_uploader.paths import PathValidator, join_base_path
from github_folder_uploader.schemas.enums import BatchStatus, JobStatus
from github_folder_uploader.schemas.events import (
    JobCompleteEvent,
    JobErrorEvent,
    JobStartEvent,
)
from github_folder_uploader.schemas.upload import (
    BatchConfig,
    BatchStats,
    BatchStatusReport,
    FileRecord,
)

if TYPE_CHECKING:
    from github_folder_uploader.github.pacing.progress import ProgressBus
    from github_folder_uploader.github.pacing.scheduler import UploadScheduler

logger = get_logger(__name__)

CleanupCallback = Callable[[str], Awaitable[None] | None]


@dataclass
class _BatchEntry:
    """A batch together with the coordination state guarding it."""

    batch: Batch
    lock: threading.Lock = field(default_factory=threading.Lock)
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    scheduler: UploadScheduler | None = None
    cleaned_up: bool = False


class BatchTracker:
    """Owns batches and jobs and applies scheduler outcomes to them.

    Usage:
        tracker = BatchTracker(bus)
        scheduler.on_job_start(tracker.handle_job_start)
        scheduler.on_job_done(tracker.handle_job_done)

        batch = tracker.create_batch(files, BatchConfig(owner="octo", repo="site"))
        tracker.start_batch(batch.id, scheduler, token)

        report = tracker.status(batch.id)
    """

    def __init__(
        self,
        bus: ProgressBus,
        validator: PathValidator | None = None,
        config: UploadConfig | None = None,
        cleanup: CleanupCallback | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            bus: Progress bus that receives job events
            validator: Path validator (default rules from settings)
            config: Upload configuration (uses settings if not provided)
            cleanup: Called once with the batch id when a batch finishes
        """
        self._bus = bus
        self._validator = validator or PathValidator()
        self._config = config or get_settings().upload
        self._cleanup = cleanup

        self._entries: dict[str, _BatchEntry] = {}
        self._jobs: dict[str, UploadJob] = {}
        self._cleanup_tasks: set[asyncio.Task[Any]] = set()

    # -------------------------------------------------------------------------
    # Batch Lifecycle
    # -------------------------------------------------------------------------
    def create_batch(self, files: Sequence[FileRecord], config: BatchConfig) -> Batch:
        """Validate a file set and create a pending batch with one job per file.

        Files whose path fails validation are excluded and recorded in
        ``Batch.rejected``.

        Raises:
            BatchValidationError: Missing owner/repo, empty or oversized file
                set, or no file left after path validation
        """
        if not config.owner or not config.repo:
            raise BatchValidationError("Repository owner and name are required")
        if not files:
            raise BatchValidationError("No files to upload")
        if len(files) > self._config.max_files_per_batch:
            raise BatchValidationError(
                f"Too many files: {len(files)} (maximum {self._config.max_files_per_batch})"
            )
        total_bytes = sum(f.size for f in files)
        if total_bytes > self._config.max_batch_bytes:
            raise BatchValidationError(
                f"Batch too large: {total_bytes} bytes (maximum {self._config.max_batch_bytes})"
            )

        accepted: list[tuple[str, FileRecord]] = []
        rejected: dict[str, str] = {}
        seen: set[str] = set()
        for record in files:
            check = self._validator.validate(join_base_path(config.base_path, record.path))
            if not check.valid:
                rejected[record.path] = check.reason or "invalid path"
            elif check.normalized in seen:
                rejected[record.path] = f"duplicate path {check.normalized!r}"
            else:
                seen.add(check.normalized)
                accepted.append((check.normalized, record))

        for path, reason in rejected.items():
            logger.warning("Skipping {}: {}", path, reason)

        if not accepted:
            raise BatchValidationError("No valid files to upload")

        batch = Batch(
            owner=config.owner,
            repo=config.repo,
            branch=config.branch or self._config.default_branch,
            base_path=config.base_path,
            commit_message=config.commit_message or self._config.default_commit_message,
            credential_ref=config.credential_ref,
            total=len(accepted),
            rejected=rejected,
        )
        for priority, (path, record) in enumerate(accepted):
            job = UploadJob(
                batch_id=batch.id,
                path=path,
                content=record.content,
                size=record.size,
                priority=priority,
            )
            self._jobs[job.id] = job
            batch.job_ids.append(job.id)

        self._entries[batch.id] = _BatchEntry(batch=batch)
        bind_batch(batch.id, batch.owner, batch.repo).info(
            "Created batch with {} file(s), {} rejected", batch.total, len(rejected)
        )
        return batch

    def start_batch(self, batch_id: str, scheduler: UploadScheduler, token: str) -> None:
        """Move a pending batch to uploading and enqueue its jobs in file order.

        Raises:
            BatchNotFoundError: Unknown batch id
            BatchValidationError: The batch is not pending
        """
        entry = self._entry(batch_id)
        batch = entry.batch
        with entry.lock:
            self._transition(batch, BatchStatus.UPLOADING)
            batch.started_at = _now()
            entry.scheduler = scheduler

        target = JobTarget(
            owner=batch.owner,
            repo=batch.repo,
            branch=batch.branch,
            message=batch.commit_message,
            token=token,
            credential_ref=batch.credential_ref,
        )
        bind_batch(batch_id, batch.owner, batch.repo).info(
            "Starting batch: {} job(s) on branch {}", batch.total, batch.branch
        )
        for job_id in list(batch.job_ids):
            if batch.status != BatchStatus.UPLOADING:
                break
            scheduler.enqueue(self._jobs[job_id], target)

    def fail_batch(self, batch_id: str, error: UploaderError | str) -> bool:
        """Mark a batch as failed before any of its jobs ran.

        Returns:
            True if the batch changed status
        """
        entry = self._entry(batch_id)
        message = error.message if isinstance(error, UploaderError) else error
        with entry.lock:
            if entry.batch.status.is_terminal:
                return False
            self._transition(entry.batch, BatchStatus.FAILED)
            entry.batch.error = message
            entry.batch.completed_at = _now()

        bind_batch(batch_id).error("Batch failed: {}", message)
        self._finish(entry)
        return True

    def cancel(self, batch_id: str) -> bool:
        """Cancel a batch that has not reached a terminal status.

        Queued jobs are dropped from the scheduler. Jobs already running
        finish, but their outcomes no longer count toward the batch.

        Returns:
            True if the batch was cancelled, False if it was already terminal
        """
        entry = self._entry(batch_id)
        with entry.lock:
            if entry.batch.status.is_terminal:
                return False
            self._transition(entry.batch, BatchStatus.CANCELLED)
            entry.batch.completed_at = _now()
            scheduler = entry.scheduler

        dropped = scheduler.discard(batch_id) if scheduler is not None else 0
        bind_batch(batch_id).info("Batch cancelled, {} queued job(s) dropped", dropped)
        self._finish(entry)
        return True

    def cancel_unfinished(self) -> list[str]:
        """Cancel every batch that has not reached a terminal status.

        Returns:
            Ids of the batches that were cancelled
        """
        return [
            batch_id
            for batch_id, entry in list(self._entries.items())
            if not entry.batch.status.is_terminal and self.cancel(batch_id)
        ]

    async def wait(self, batch_id: str, timeout: float | None = None) -> BatchStatusReport:
        """Wait until a batch reaches a terminal status.

        Raises:
            BatchNotFoundError: Unknown batch id
            TimeoutError: If the batch is still running after ``timeout`` seconds
        """
        entry = self._entry(batch_id)
        await asyncio.wait_for(entry.finished.wait(), timeout)
        return self.status(batch_id)

    # -------------------------------------------------------------------------
    # Scheduler Callbacks
    # -------------------------------------------------------------------------
    def handle_job_start(self, job: UploadJob) -> None:
        """Record that a job left the queue. Registered with ``on_job_start``."""
        entry = self._entries.get(job.batch_id)
        if entry is None:
            return
        with entry.lock:
            job.status = JobStatus.ACTIVE
            job.started_at = _now()

        self._bus.publish(JobStartEvent(batch_id=job.batch_id, job_id=job.id, file_path=job.path))

    def handle_job_done(self, outcome: JobOutcome) -> None:
        """Record a job outcome and advance the batch. Registered with ``on_job_done``."""
        job = outcome.job
        entry = self._entries.get(job.batch_id)
        if entry is None:
            return

        batch = entry.batch
        if outcome.requeued:
            self._handle_requeued(entry, job)
            return

        completed_now = False
        with entry.lock:
            job.finished_at = _now()
            job.duration_ms = outcome.duration_ms
            if outcome.result is not None:
                job.status = JobStatus.DONE
                job.sha = outcome.result.sha
                job.url = outcome.result.url
            else:
                job.status = JobStatus.ERROR
                if outcome.error is not None:
                    job.error_code = outcome.error.code
                    job.error_message = outcome.error.message
                    job.status_code = outcome.error.status_code
            job.content = b""

            # Outcomes arriving after cancellation are recorded on the job only
            if batch.status == BatchStatus.UPLOADING:
                if job.status == JobStatus.DONE:
                    batch.completed += 1
                else:
                    batch.failed += 1
                if batch.processed >= batch.total:
                    self._transition(batch, BatchStatus.COMPLETED)
                    batch.completed_at = _now()
                    completed_now = True

        if job.status == JobStatus.DONE:
            bind_job(job.batch_id, job.id, job.path).debug("Uploaded in {}ms", job.duration_ms)
        else:
            bind_job(job.batch_id, job.id, job.path).warning(
                "Upload failed: {}", job.error_message or "unknown error"
            )
        self._publish_outcome(outcome)

        if completed_now:
            bind_batch(batch.id, batch.owner, batch.repo).info(
                "Batch completed: {} succeeded, {} failed", batch.completed, batch.failed
            )
            self._finish(entry)

    def _handle_requeued(self, entry: _BatchEntry, job: UploadJob) -> None:
        """A quota rejection sent the job back to the queue; it is not an outcome yet."""
        with entry.lock:
            job.status = JobStatus.QUEUED
            job.started_at = None
            still_running = entry.batch.status == BatchStatus.UPLOADING
            scheduler = entry.scheduler
            if not still_running:
                job.content = b""

        if not still_running and scheduler is not None:
            scheduler.discard(job.batch_id)
        bind_job(job.batch_id, job.id, job.path).debug("Requeued after quota rejection")

    def _publish_outcome(self, outcome: JobOutcome) -> None:
        job = outcome.job
        if outcome.result is not None:
            self._bus.publish(
                JobCompleteEvent(
                    batch_id=job.batch_id,
                    job_id=job.id,
                    file_path=job.path,
                    duration_ms=outcome.duration_ms,
                    result=outcome.result.to_dict(),
                )
            )
            return

        error = outcome.error
        self._bus.publish(
            JobErrorEvent(
                batch_id=job.batch_id,
                job_id=job.id,
                file_path=job.path,
                error=error.message if error is not None else "Unknown error",
                code=error.code if error is not None else "UPLOAD_ERROR",
                status=error.status_code if error is not None else None,
                headers=outcome.headers,
            )
        )

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------
    def _finish(self, entry: _BatchEntry) -> None:
        """Release idle job content, wake waiters and run the cleanup callback once."""
        entry.finished.set()
        with entry.lock:
            # Running jobs still need their bytes; they drop them on completion
            for job_id in entry.batch.job_ids:
                job = self._jobs[job_id]
                if job.status != JobStatus.ACTIVE:
                    job.content = b""
            if entry.cleaned_up:
                return
            entry.cleaned_up = True

        if self._cleanup is None:
            return
        batch_id = entry.batch.id
        try:
            result = self._cleanup(batch_id)
            if asyncio.iscoroutine(result):
                task = asyncio.create_task(result)
                self._cleanup_tasks.add(task)
                task.add_done_callback(lambda t: self._cleanup_done(batch_id, t))
        except Exception as e:
            bind_batch(batch_id).error("Cleanup callback failed: {}", e)

    def _cleanup_done(self, batch_id: str, task: asyncio.Task[Any]) -> None:
        self._cleanup_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            bind_batch(batch_id).error("Cleanup callback failed: {}", task.exception())

    @staticmethod
    def _transition(batch: Batch, target: BatchStatus) -> None:
        if not batch.status.can_become(target):
            raise BatchValidationError(
                f"Batch {batch.id} cannot move from {batch.status} to {target}"
            )
        batch.status = target

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    def status(self, batch_id: str) -> BatchStatusReport:
        """Current status, percentage and counters of a batch.

        Raises:
            BatchNotFoundError: Unknown batch id
        """
        entry = self._entry(batch_id)
        with entry.lock:
            batch = entry.batch
            return BatchStatusReport(
                batch_id=batch.id,
                status=batch.status,
                percentage=round(batch.percentage, 2),
                stats=BatchStats(
                    total=batch.total,
                    completed=batch.completed,
                    failed=batch.failed,
                ),
                owner=batch.owner,
                repo=batch.repo,
                branch=batch.branch,
                created_at=batch.created_at,
                started_at=batch.started_at,
                completed_at=batch.completed_at,
                error=batch.error,
            )

    def get_batch(self, batch_id: str) -> Batch:
        return self._entry(batch_id).batch

    def get_job(self, job_id: str) -> UploadJob | None:
        return self._jobs.get(job_id)

    def jobs_for(self, batch_id: str) -> list[UploadJob]:
        """Jobs of a batch in priority order."""
        return [self._jobs[job_id] for job_id in self._entry(batch_id).batch.job_ids]

    def batch_ids_for_credential(self, credential_ref: str) -> list[str]:
        return [
            batch_id
            for batch_id, entry in self._entries.items()
            if entry.batch.credential_ref == credential_ref
        ]

    def __contains__(self, batch_id: object) -> bool:
        return batch_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, batch_id: str) -> _BatchEntry:
        entry = self._entries.get(batch_id)
        if entry is None:
            raise BatchNotFoundError(f"Batch {batch_id} not found")
        return entry


def _now() -> datetime:
    return datetime.now(UTC)
