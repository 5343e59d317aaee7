"""Batch upload service.

UploadService is the entry point for callers. It wires the tracker, the
progress bus and one scheduling lane per credential together:

    files ──► BatchTracker ──► UploadScheduler ──► GitHub contents API
                  ▲                  │
                  │   job outcomes   ├──► RateLimitGovernor (pause/resume)
                  └──────────────────┘
                  │
                  ▼
             ProgressBus ──► subscribers

A quota pause only affects the lane of the exhausted credential.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import partial
from types import TracebackType
from typing import Any

from github_folder_uploader.auth import StaticTokenProvider, TokenProvider
from github_folder_uploader.config import Settings, get_settings
from github_folder_uploader.exceptions import AuthError, BatchValidationError
from github_folder_uploader.github.pacing.progress import ProgressBus, Subscription
from github_folder_uploader.github.pacing.scheduler import ClientFactory, UploadScheduler
from github_folder_uploader.github.rate_limit.governor import RateLimitGovernor
from github_folder_uploader.logging import bind_batch, get_logger
from github_folder_uploader.paths import PathValidator
from github_folder_uploader.schemas.enums import BatchStatus
from github_folder_uploader.schemas.events import ProgressEvent
from github_folder_uploader.schemas.upload import (
    BatchConfig,
    BatchStatusReport,
    BatchSubmission,
    FileRecord,
    FileSummary,
)

from .tracker import BatchTracker, CleanupCallback

logger = get_logger(__name__)


@dataclass
class UploadLane:
    """Scheduler and governor serving every batch of one credential."""

    credential_ref: str
    scheduler: UploadScheduler
    governor: RateLimitGovernor


class UploadService:
    """Submit, start, observe and cancel batch uploads.

    Usage:
        async with UploadService() as service:
            submission = service.submit_batch(files, BatchConfig(owner="octo", repo="site"))
            await service.start_batch(submission.batch_id)

            async with service.subscribe(submission.batch_id) as events:
                async for event in events:
                    print(event.kind, event.to_payload())
                    if service.get_batch_status(submission.batch_id).status != "uploading":
                        break
    """

    def __init__(
        self,
        token_provider: TokenProvider | None = None,
        client_factory: ClientFactory | None = None,
        settings: Settings | None = None,
        cleanup: CleanupCallback | None = None,
        bus: ProgressBus | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            token_provider: Resolves credential references (default: the settings token)
            client_factory: Builds a GitHub client for a token (default GitHubClient)
            settings: Application settings (uses get_settings() if not provided)
            cleanup: Called once per batch when it finishes
            bus: Progress bus (a new one if not provided)
        """
        self._settings = settings or get_settings()
        self._tokens: TokenProvider = token_provider or StaticTokenProvider(
            {"default": self._settings.github_token}
        )
        self._client_factory = client_factory
        self._bus = bus or ProgressBus(self._settings.upload.subscriber_queue_size)
        self._tracker = BatchTracker(
            self._bus,
            validator=PathValidator(self._settings.paths),
            config=self._settings.upload,
            cleanup=cleanup,
        )
        self._lanes: dict[str, UploadLane] = {}

    # -------------------------------------------------------------------------
    # Batch Operations
    # -------------------------------------------------------------------------
    def submit_batch(self, files: Sequence[FileRecord], config: BatchConfig) -> BatchSubmission:
        """Validate a file set and register it as a pending batch.

        Raises:
            BatchValidationError: The request or file set is invalid
        """
        batch = self._tracker.create_batch(files, config)
        jobs = self._tracker.jobs_for(batch.id)
        return BatchSubmission(
            batch_id=batch.id,
            file_count=batch.total,
            total_size_bytes=sum(job.size for job in jobs),
            files=[FileSummary(path=job.path, size=job.size) for job in jobs],
            rejected=dict(batch.rejected),
        )

    async def start_batch(self, batch_id: str) -> BatchStatusReport:
        """Resolve the batch credential and enqueue every job.

        A batch cancelled while its token was being resolved is not
        started; its (cancelled) report is returned instead.

        Raises:
            BatchNotFoundError: Unknown batch id
            BatchValidationError: The batch is not pending
            AuthError: No token for the credential; the batch becomes failed
        """
        batch = self._tracker.get_batch(batch_id)
        if batch.status != BatchStatus.PENDING:
            raise BatchValidationError(f"Batch {batch_id} is {batch.status}, cannot start")

        try:
            token = await self._tokens.get_token(batch.credential_ref)
        except AuthError as e:
            self._tracker.fail_batch(batch_id, e)
            raise

        # The token lookup awaited, so the batch may have moved on meanwhile
        if batch.status.is_terminal:
            bind_batch(batch_id).info("Batch {} before it started, not enqueued", batch.status)
            return self._tracker.status(batch_id)
        if batch.status != BatchStatus.PENDING:
            raise BatchValidationError(f"Batch {batch_id} is {batch.status}, cannot start")

        lane = self._lane(batch.credential_ref)
        self._tracker.start_batch(batch_id, lane.scheduler, token)
        return self._tracker.status(batch_id)

    def get_batch_status(self, batch_id: str) -> BatchStatusReport:
        return self._tracker.status(batch_id)

    def cancel_batch(self, batch_id: str) -> bool:
        """Cancel a batch. Returns False if it had already finished."""
        return self._tracker.cancel(batch_id)

    def subscribe(self, batch_id: str) -> Subscription:
        """Subscribe to the progress events of a batch.

        Read ``get_batch_status`` first: events published before the
        subscription existed are not replayed.

        Raises:
            BatchNotFoundError: Unknown batch id
        """
        self._tracker.get_batch(batch_id)
        return self._bus.subscribe(batch_id)

    async def wait_for_batch(
        self, batch_id: str, timeout: float | None = None
    ) -> BatchStatusReport:
        """Wait until a batch completes, fails or is cancelled.

        Raises:
            TimeoutError: If the batch is still running after ``timeout`` seconds
        """
        return await self._tracker.wait(batch_id, timeout)

    # -------------------------------------------------------------------------
    # Lanes
    # -------------------------------------------------------------------------
    def _lane(self, credential_ref: str) -> UploadLane:
        lane = self._lanes.get(credential_ref)
        if lane is not None:
            return lane

        scheduler = UploadScheduler(
            client_factory=self._client_factory,
            config=self._settings.upload,
            defer_rate_limited=True,
        )
        governor = RateLimitGovernor(
            scheduler,
            config=self._settings.rate_limit,
            emit=partial(self._broadcast_quota_event, credential_ref),
        )
        scheduler.on_job_start(self._tracker.handle_job_start)
        scheduler.on_job_done(self._tracker.handle_job_done)
        scheduler.on_job_done(governor.observe)

        lane = UploadLane(credential_ref=credential_ref, scheduler=scheduler, governor=governor)
        self._lanes[credential_ref] = lane
        logger.debug("Created upload lane for credential {!r}", credential_ref)
        return lane

    def _broadcast_quota_event(self, credential_ref: str, event: ProgressEvent) -> None:
        self._bus.broadcast(event, self._tracker.batch_ids_for_credential(credential_ref))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def close(self, wait: bool = False, timeout: float = 30.0) -> None:
        """Stop every lane, cancel unfinished batches and close all subscriptions.

        Batches still pending or uploading once the lanes are down end up
        cancelled, so their waiters wake and their cleanup runs.

        Args:
            wait: If True, let queued and running jobs finish first
            timeout: Maximum seconds to wait per lane
        """
        for lane in self._lanes.values():
            # A paused lane still needs its governor to resume while we wait
            await lane.scheduler.shutdown(wait=wait, timeout=timeout)
            await lane.governor.close()
        self._lanes.clear()

        cancelled = self._tracker.cancel_unfinished()
        if cancelled:
            logger.warning("Service closed with {} unfinished batch(es)", len(cancelled))
        self._bus.close()

    async def __aenter__(self) -> UploadService:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    @property
    def tracker(self) -> BatchTracker:
        return self._tracker

    @property
    def bus(self) -> ProgressBus:
        return self._bus

    def lane(self, credential_ref: str = "default") -> UploadLane | None:
        return self._lanes.get(credential_ref)

    def get_queue_stats(self) -> dict[str, dict[str, Any]]:
        """Scheduler and quota statistics per credential."""
        return {
            ref: {**lane.scheduler.get_stats(), "rate_limit": lane.governor.to_dict()}
            for ref, lane in self._lanes.items()
        }
