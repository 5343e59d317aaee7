"""Unit tests for RateLimitGovernor.

The scheduler is a MagicMock; these tests only verify what the governor
does with the quota metadata of job outcomes.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from github_folder_uploader.config import RateLimitConfig
from github_folder_uploader.exceptions import RateLimitError, UploadError
from github_folder_uploader.github.rate_limit.governor import RateLimitGovernor
from github_folder_uploader.schemas.enums import EventKind
from github_folder_uploader.schemas.events import (
    ProgressEvent,
    RateLimitExceededEvent,
    RateLimitWarningEvent,
)
from tests.factories import make_error_outcome, make_success_outcome
from tests.fixtures.rate_limit_responses import (
    HEADERS_EXHAUSTED_RESET_PASSED,
    HEADERS_HEALTHY,
    HEADERS_LOW,
    make_rate_limit_headers,
)

NOW = datetime(2030, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def scheduler() -> MagicMock:
    return MagicMock(is_paused=False)


@pytest.fixture
def events() -> list[ProgressEvent]:
    return []


@pytest.fixture
def governor(
    scheduler: MagicMock, rate_limit_config: RateLimitConfig, events: list[ProgressEvent]
) -> RateLimitGovernor:
    return RateLimitGovernor(scheduler, config=rate_limit_config, emit=events.append)


def rate_limited(headers: dict[str, str] | None = None, reset_at: datetime | None = None):
    """Outcome of a job rejected by the quota."""
    headers = headers if headers is not None else HEADERS_EXHAUSTED_RESET_PASSED
    return make_error_outcome(
        error=RateLimitError("GitHub rate limit exceeded", reset_at=reset_at, headers=headers)
    )


class TestObserveHealthy:
    """Tests for outcomes that carry plenty of quota."""

    def test_success_updates_state(
        self, governor: RateLimitGovernor, events: list[ProgressEvent]
    ) -> None:
        governor.observe(make_success_outcome(headers=HEADERS_HEALTHY))

        state = governor.state
        assert state.remaining == 4500
        assert state.limit == 5000
        assert state.paused is False
        assert events == []

    def test_outcome_without_headers_ignored(self, governor: RateLimitGovernor) -> None:
        governor.observe(make_success_outcome(headers={}))

        assert governor.state.remaining is None
        assert governor.state.last_updated is None

    def test_header_tracking_can_be_disabled(self, scheduler: MagicMock) -> None:
        governor = RateLimitGovernor(scheduler, config=RateLimitConfig(track_from_headers=False))

        governor.observe(make_success_outcome(headers=HEADERS_HEALTHY))

        assert governor.state.remaining is None

    def test_ordinary_failure_does_not_pause(
        self, governor: RateLimitGovernor, scheduler: MagicMock
    ) -> None:
        governor.observe(make_error_outcome(headers=HEADERS_HEALTHY))

        scheduler.pause.assert_not_called()
        assert governor.state.remaining == 4500

    def test_forbidden_with_quota_left_does_not_pause(
        self, governor: RateLimitGovernor, scheduler: MagicMock
    ) -> None:
        error = UploadError("Resource not accessible", status_code=403, headers=HEADERS_HEALTHY)

        governor.observe(make_error_outcome(error=error))

        scheduler.pause.assert_not_called()


class TestWarning:
    """Tests for low-quota warnings."""

    def test_warning_below_threshold(
        self, governor: RateLimitGovernor, events: list[ProgressEvent], scheduler: MagicMock
    ) -> None:
        governor.observe(make_success_outcome(headers=HEADERS_LOW))

        assert len(events) == 1
        event = events[0]
        assert isinstance(event, RateLimitWarningEvent)
        assert event.remaining == 5
        assert event.limit == 5000
        assert event.reset_in_ms > 0
        assert governor.state.warning_count == 1
        scheduler.pause.assert_not_called()

    def test_no_warning_at_threshold(
        self, governor: RateLimitGovernor, events: list[ProgressEvent]
    ) -> None:
        governor.observe(make_success_outcome(headers=make_rate_limit_headers(remaining=10)))

        assert events == []

    def test_warning_per_observation(
        self, governor: RateLimitGovernor, events: list[ProgressEvent]
    ) -> None:
        governor.observe(make_success_outcome(headers=HEADERS_LOW))
        governor.observe(make_success_outcome(headers=make_rate_limit_headers(remaining=4)))

        assert [e.remaining for e in events] == [5, 4]  # type: ignore[attr-defined]


class TestComputeWait:
    """Tests for the pause duration."""

    def test_wait_until_reset_plus_buffer(self, scheduler: MagicMock) -> None:
        config = RateLimitConfig(reset_buffer_ms=1000, min_wait_ms=1000)
        governor = RateLimitGovernor(scheduler, config=config, clock=lambda: NOW)

        assert governor.compute_wait_ms(NOW + timedelta(seconds=30)) == 31_000

    def test_reset_in_past_uses_min_wait(self, scheduler: MagicMock) -> None:
        config = RateLimitConfig(reset_buffer_ms=1000, min_wait_ms=1000)
        governor = RateLimitGovernor(scheduler, config=config, clock=lambda: NOW)

        assert governor.compute_wait_ms(NOW - timedelta(minutes=5)) == 1000

    def test_unknown_reset_uses_min_wait(self, governor: RateLimitGovernor) -> None:
        assert governor.compute_wait_ms(None) == 50


class TestExhaustion:
    """Tests for the pause/resume cycle."""

    @pytest.mark.asyncio
    async def test_rate_limit_error_pauses_then_resumes(
        self, governor: RateLimitGovernor, scheduler: MagicMock, events: list[ProgressEvent]
    ) -> None:
        governor.observe(rate_limited())

        scheduler.pause.assert_called_once()
        assert governor.is_paused
        assert governor.has_pending_resume
        assert len(events) == 1
        exceeded = events[0]
        assert isinstance(exceeded, RateLimitExceededEvent)
        assert exceeded.remaining == 0
        assert exceeded.wait_ms == 50

        await asyncio.sleep(0.1)

        scheduler.resume.assert_called_once()
        assert not governor.is_paused
        assert not governor.has_pending_resume
        assert [e.kind for e in events] == [
            EventKind.RATE_LIMIT_EXCEEDED,
            EventKind.RATE_LIMIT_RESUMED,
        ]

    @pytest.mark.asyncio
    async def test_forbidden_with_zero_remaining_pauses(
        self, governor: RateLimitGovernor, scheduler: MagicMock
    ) -> None:
        error = UploadError(
            "API rate limit exceeded", status_code=429, headers=HEADERS_EXHAUSTED_RESET_PASSED
        )

        governor.observe(make_error_outcome(error=error))

        scheduler.pause.assert_called_once()
        await governor.close()

    @pytest.mark.asyncio
    async def test_reset_from_error_wins(self, scheduler: MagicMock) -> None:
        config = RateLimitConfig(reset_buffer_ms=0, min_wait_ms=10)
        events: list[ProgressEvent] = []
        governor = RateLimitGovernor(
            scheduler, config=config, emit=events.append, clock=lambda: NOW
        )

        governor.observe(rate_limited(reset_at=NOW + timedelta(seconds=42)))

        assert isinstance(events[0], RateLimitExceededEvent)
        assert events[0].wait_ms == 42_000
        assert events[0].reset_time == NOW + timedelta(seconds=42)
        await governor.close()

    @pytest.mark.asyncio
    async def test_second_signal_while_paused_ignored(
        self, governor: RateLimitGovernor, scheduler: MagicMock, events: list[ProgressEvent]
    ) -> None:
        governor.observe(rate_limited())
        governor.observe(rate_limited())

        scheduler.pause.assert_called_once()
        assert governor.state.exhaustion_count == 1
        assert len(events) == 1
        await governor.close()

    @pytest.mark.asyncio
    async def test_new_cycle_after_resume(
        self, governor: RateLimitGovernor, scheduler: MagicMock
    ) -> None:
        governor.observe(rate_limited())
        await asyncio.sleep(0.1)
        governor.observe(rate_limited())

        assert scheduler.pause.call_count == 2
        assert governor.state.exhaustion_count == 2
        await governor.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_resume(
        self, governor: RateLimitGovernor, scheduler: MagicMock
    ) -> None:
        governor.observe(rate_limited())

        await governor.close()
        await asyncio.sleep(0.1)

        scheduler.resume.assert_not_called()
        assert not governor.has_pending_resume

    @pytest.mark.asyncio
    async def test_owner_pause_survives_cycle(
        self, rate_limit_config: RateLimitConfig, events: list[ProgressEvent]
    ) -> None:
        """A scheduler paused before the quota ran out stays paused afterwards."""
        scheduler = MagicMock(is_paused=True)
        governor = RateLimitGovernor(scheduler, config=rate_limit_config, emit=events.append)

        governor.observe(rate_limited())
        await asyncio.sleep(0.1)

        scheduler.resume.assert_not_called()
        assert not governor.is_paused
        assert [e.kind for e in events] == [
            EventKind.RATE_LIMIT_EXCEEDED,
            EventKind.RATE_LIMIT_RESUMED,
        ]

    @pytest.mark.asyncio
    async def test_owner_pause_then_new_cycle_resumes(
        self, rate_limit_config: RateLimitConfig
    ) -> None:
        scheduler = MagicMock(is_paused=True)
        governor = RateLimitGovernor(scheduler, config=rate_limit_config)

        governor.observe(rate_limited())
        await asyncio.sleep(0.1)
        scheduler.is_paused = False
        governor.observe(rate_limited())
        await asyncio.sleep(0.1)

        scheduler.resume.assert_called_once()


class TestEmit:
    """Tests for event delivery."""

    @pytest.mark.asyncio
    async def test_async_emit_callback(self, scheduler: MagicMock) -> None:
        received: list[ProgressEvent] = []

        async def emit(event: ProgressEvent) -> None:
            received.append(event)

        governor = RateLimitGovernor(scheduler, config=RateLimitConfig(), emit=emit)
        governor.observe(make_success_outcome(headers=HEADERS_LOW))
        await asyncio.sleep(0)

        assert len(received) == 1

    def test_emit_errors_are_swallowed(self, scheduler: MagicMock) -> None:
        def emit(event: ProgressEvent) -> None:
            raise RuntimeError("subscriber bug")

        governor = RateLimitGovernor(scheduler, config=RateLimitConfig(), emit=emit)
        governor.observe(make_success_outcome(headers=HEADERS_LOW))

        assert governor.state.warning_count == 1

    def test_no_emit_callback(self, scheduler: MagicMock) -> None:
        governor = RateLimitGovernor(scheduler, config=RateLimitConfig())

        governor.observe(make_success_outcome(headers=HEADERS_LOW))

        assert governor.state.warning_count == 1


class TestToDict:
    """Tests for to_dict()."""

    def test_to_dict(self, governor: RateLimitGovernor) -> None:
        governor.observe(make_success_outcome(headers=HEADERS_HEALTHY))

        data = governor.to_dict()

        assert data["remaining"] == 4500
        assert data["limit"] == 5000
        assert data["remaining_percent"] == 90.0
        assert data["reset_at"] is not None
        assert data["paused"] is False
        assert data["exhaustion_count"] == 0

    def test_to_dict_empty(self, governor: RateLimitGovernor) -> None:
        data = governor.to_dict()

        assert data["remaining"] is None
        assert data["remaining_percent"] is None
        assert data["reset_at"] is None

    def test_state_is_a_copy(self, governor: RateLimitGovernor) -> None:
        governor.state.paused = True

        assert governor.is_paused is False
