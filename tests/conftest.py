"""Pytest configuration and shared fixtures.

Usage Guide:
- For scheduler, tracker and service tests: use the `fake_github` client and
  the fast `upload_config` / `rate_limit_config` fixtures
- For record construction: import factories from tests.factories
- For raw API payloads: import from tests.fixtures
"""

import pytest

from github_folder_uploader.config import (
    PathConfig,
    RateLimitConfig,
    Settings,
    UploadConfig,
    get_settings,
)
from github_folder_uploader.github.pacing.progress import ProgressBus
from tests.fixtures.fake_client import FakeGitHubClient


# -----------------------------------------------------------------------------
# Settings Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Keep the cached settings free of the developer's environment."""
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def upload_config() -> UploadConfig:
    """Upload configuration with a short job timeout."""
    return UploadConfig(concurrency=2, job_timeout_seconds=5.0)


@pytest.fixture
def rate_limit_config() -> RateLimitConfig:
    """Rate limit configuration with millisecond pauses."""
    return RateLimitConfig(warning_threshold=10, reset_buffer_ms=0, min_wait_ms=50)


@pytest.fixture
def path_config() -> PathConfig:
    return PathConfig()


@pytest.fixture
def settings(upload_config: UploadConfig, rate_limit_config: RateLimitConfig) -> Settings:
    """Settings for service tests, never read from .env."""
    return Settings(
        _env_file=None,
        github_token="test-token",
        upload=upload_config,
        rate_limit=rate_limit_config,
    )


# -----------------------------------------------------------------------------
# Collaborator Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def fake_github() -> FakeGitHubClient:
    return FakeGitHubClient()


@pytest.fixture
def bus() -> ProgressBus:
    return ProgressBus(queue_size=100)
