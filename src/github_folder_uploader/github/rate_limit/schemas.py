"""Pydantic schemas for GitHub request quota data.

These schemas represent quota information from:
- GET /rate_limit API endpoint (core pool)
- x-ratelimit-* response headers on every contents API call
"""

from datetime import UTC, datetime
from typing import Any, Self

from pydantic import BaseModel, Field, computed_field


class QuotaSnapshot(BaseModel):
    """Point-in-time quota reading for one credential.

    Built from the headers of a single response. Every field is optional
    because error responses do not always carry quota headers.
    """

    limit: int | None = Field(default=None, ge=0, description="Requests allowed per window")
    remaining: int | None = Field(default=None, ge=0, description="Requests left in window")
    used: int | None = Field(default=None, ge=0, description="Requests used in window")
    reset_at: datetime | None = Field(default=None, description="UTC datetime of the reset")
    resource: str = Field(default="core", description="Resource pool the reading belongs to")

    @classmethod
    def from_response_headers(cls, headers: dict[str, str]) -> Self:
        """Parse from HTTP response headers.

        Header names are matched case-insensitively. Missing or malformed
        values stay None.

        Args:
            headers: HTTP response headers dict

        Returns:
            QuotaSnapshot instance
        """
        lowered = {str(k).lower(): v for k, v in headers.items()}
        reset_ts = _parse_int(lowered.get("x-ratelimit-reset"))
        return cls(
            limit=_parse_int(lowered.get("x-ratelimit-limit")),
            remaining=_parse_int(lowered.get("x-ratelimit-remaining")),
            used=_parse_int(lowered.get("x-ratelimit-used")),
            reset_at=datetime.fromtimestamp(reset_ts, tz=UTC) if reset_ts else None,
            resource=lowered.get("x-ratelimit-resource", "core"),
        )

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Self:
        """Parse the core pool from a /rate_limit response (or GitHubClient.get_rate_limit)."""
        core = data.get("resources", {}).get("core", data)
        reset = core.get("reset")
        if isinstance(reset, int | float):
            reset = datetime.fromtimestamp(reset, tz=UTC)
        return cls(
            limit=core.get("limit"),
            remaining=core.get("remaining"),
            used=core.get("used"),
            reset_at=reset,
        )

    @property
    def has_quota_info(self) -> bool:
        """True if the response carried a remaining count."""
        return self.remaining is not None

    @property
    def is_exhausted(self) -> bool:
        return self.remaining == 0

    def ms_until_reset(self, now: datetime | None = None) -> int:
        """Milliseconds until the reset time (0 if unknown or already past)."""
        if self.reset_at is None:
            return 0
        delta = self.reset_at - (now or datetime.now(UTC))
        return max(0, int(delta.total_seconds() * 1000))

    @property
    def seconds_until_reset(self) -> int:
        """Seconds until the reset time (0 if unknown or already past)."""
        return self.ms_until_reset() // 1000


class QuotaState(BaseModel):
    """Governor-owned view of the quota for one credential."""

    remaining: int | None = Field(default=None, description="Last observed remaining count")
    limit: int | None = Field(default=None, description="Last observed limit")
    reset_at: datetime | None = Field(default=None, description="Last observed reset time")
    paused: bool = Field(default=False, description="Scheduler paused for quota exhaustion")
    exhaustion_count: int = Field(default=0, ge=0, description="Pause cycles started")
    warning_count: int = Field(default=0, ge=0, description="Low-quota warnings emitted")
    last_updated: datetime | None = Field(default=None)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_percent(self) -> float | None:
        """Percentage of quota remaining, if known."""
        if self.remaining is None or not self.limit:
            return None
        return (self.remaining / self.limit) * 100

    def apply(self, snapshot: QuotaSnapshot) -> None:
        """Take over the values carried by a snapshot."""
        if snapshot.remaining is not None:
            self.remaining = snapshot.remaining
        if snapshot.limit is not None:
            self.limit = snapshot.limit
        if snapshot.reset_at is not None:
            self.reset_at = snapshot.reset_at
        self.last_updated = datetime.now(UTC)


def _parse_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
