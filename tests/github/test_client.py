"""Tests for GitHubClient.

Tests cover:
- Token handling
- Existence check (sha lookup) including 404 -> None
- Create-or-update writes and the request payload
- Error mapping (401, 403/429 with zero remaining, 404, others)
- Header extraction on success and failure
"""

import base64
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from githubkit.exception import RequestFailed

from github_folder_uploader.github.client import GitHubClient, headers_to_dict
from github_folder_uploader.github.exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from tests.fixtures import (
    COMMIT_SHA,
    EXISTING_FILE_SHA,
    GITHUB_CONTENT_DIR_RESPONSE,
    GITHUB_CONTENT_FILE_RESPONSE,
    GITHUB_FILE_WRITE_RESPONSE,
    NEW_BLOB_SHA,
)
from tests.fixtures.rate_limit_responses import HEADERS_HEALTHY, make_rate_limit_headers


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def make_response(
    payload=None,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """Create a MagicMock that behaves like a githubkit Response."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers if headers is not None else dict(HEADERS_HEALTHY)
    response.json.return_value = payload
    return response


def make_request_failed(
    status_code: int,
    payload=None,
    headers: dict[str, str] | None = None,
) -> RequestFailed:
    return RequestFailed(make_response(payload, status_code=status_code, headers=headers or {}))


# -----------------------------------------------------------------------------
# Test Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def mock_github():
    """Create a mock githubkit GitHub client."""
    with patch("github_folder_uploader.github.client.GitHub") as mock_class:
        mock_instance = MagicMock()
        mock_class.return_value = mock_instance
        yield mock_instance


@pytest.fixture
def client(mock_github: MagicMock) -> GitHubClient:
    return GitHubClient(token="test-token")


# -----------------------------------------------------------------------------
# Test: Initialization
# -----------------------------------------------------------------------------
class TestGitHubClientInit:
    """Tests for GitHubClient initialization."""

    def test_init_with_token(self):
        client = GitHubClient(token="test-token")
        assert client._token == "test-token"

    def test_init_from_settings(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GITHUB_TOKEN", "env-token")

        assert GitHubClient()._token == "env-token"

    def test_init_without_token_raises(self):
        """Client raises error when no token available."""
        with pytest.raises(GitHubAuthenticationError):
            GitHubClient(token=None)

    def test_github_built_lazily_without_retries(self):
        with patch("github_folder_uploader.github.client.GitHub") as mock_class:
            client = GitHubClient(token="test-token")
            mock_class.assert_not_called()

            _ = client._github
            _ = client._github

            mock_class.assert_called_once_with("test-token", auto_retry=False)

    async def test_context_manager_closes(self, mock_github: MagicMock):
        async with GitHubClient(token="test-token") as client:
            _ = client._github

        assert client._client is None


# -----------------------------------------------------------------------------
# Test: get_file_sha
# -----------------------------------------------------------------------------
class TestGetFileSha:
    """Tests for the existence check."""

    async def test_existing_file(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_get_content = AsyncMock(
            return_value=make_response(GITHUB_CONTENT_FILE_RESPONSE)
        )

        sha = await client.get_file_sha("octokit", "octokit.rb", "README.md", ref="main")

        assert sha == EXISTING_FILE_SHA
        mock_github.rest.repos.async_get_content.assert_awaited_once_with(
            owner="octokit", repo="octokit.rb", path="README.md", ref="main"
        )

    async def test_missing_file_returns_none(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_get_content = AsyncMock(
            side_effect=make_request_failed(404, {"message": "Not Found"})
        )

        assert await client.get_file_sha("o", "r", "new.txt", ref="main") is None

    async def test_directory_is_an_error(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_get_content = AsyncMock(
            return_value=make_response(GITHUB_CONTENT_DIR_RESPONSE)
        )

        with pytest.raises(GitHubClientError, match="is a directory"):
            await client.get_file_sha("o", "r", "lib", ref="main")

    async def test_unexpected_payload(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_get_content = AsyncMock(
            return_value=make_response({"type": "file"})
        )

        with pytest.raises(GitHubClientError, match="Unexpected contents response"):
            await client.get_file_sha("o", "r", "a.txt", ref="main")

    async def test_other_errors_propagate(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_get_content = AsyncMock(
            side_effect=make_request_failed(401, {"message": "Bad credentials"})
        )

        with pytest.raises(GitHubAuthenticationError, match="Bad credentials"):
            await client.get_file_sha("o", "r", "a.txt", ref="main")


# -----------------------------------------------------------------------------
# Test: put_file
# -----------------------------------------------------------------------------
class TestPutFile:
    """Tests for create-or-update writes."""

    async def test_create(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_create_or_update_file_contents = AsyncMock(
            return_value=make_response(GITHUB_FILE_WRITE_RESPONSE, status_code=201)
        )

        written, headers = await client.put_file(
            "octocat", "website", "docs/index.md", b"# Hello", message="Add docs", branch="main"
        )

        assert written.content is not None
        assert written.content.sha == NEW_BLOB_SHA
        assert written.commit.sha == COMMIT_SHA
        assert written.html_url == "https://github.com/octocat/website/blob/main/docs/index.md"
        assert headers["x-ratelimit-remaining"] == "4500"

        call = mock_github.rest.repos.async_create_or_update_file_contents.call_args
        assert call.kwargs["path"] == "docs/index.md"
        payload = call.kwargs["data"]
        assert payload["message"] == "Add docs"
        assert payload["branch"] == "main"
        assert base64.b64decode(payload["content"]) == b"# Hello"
        assert "sha" not in payload

    async def test_update_sends_sha(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_create_or_update_file_contents = AsyncMock(
            return_value=make_response(GITHUB_FILE_WRITE_RESPONSE)
        )

        await client.put_file(
            "o", "r", "docs/index.md", b"x", message="m", branch="main", sha=EXISTING_FILE_SHA
        )

        payload = mock_github.rest.repos.async_create_or_update_file_contents.call_args.kwargs[
            "data"
        ]
        assert payload["sha"] == EXISTING_FILE_SHA

    async def test_validation_error_keeps_headers(
        self, client: GitHubClient, mock_github: MagicMock
    ):
        headers = make_rate_limit_headers(remaining=42)
        mock_github.rest.repos.async_create_or_update_file_contents = AsyncMock(
            side_effect=make_request_failed(
                422,
                {
                    "message": "Invalid request.",
                    "errors": [{"message": "sha wasn't supplied."}],
                },
                headers=headers,
            )
        )

        with pytest.raises(GitHubClientError) as exc_info:
            await client.put_file("o", "r", "a.txt", b"x", message="m", branch="main")

        error = exc_info.value
        assert error.status_code == 422
        assert "Invalid request. (sha wasn't supplied.)" in str(error)
        assert error.headers["x-ratelimit-remaining"] == "42"

    async def test_unexpected_write_payload(self, client: GitHubClient, mock_github: MagicMock):
        mock_github.rest.repos.async_create_or_update_file_contents = AsyncMock(
            return_value=make_response({"content": None})
        )

        with pytest.raises(GitHubClientError, match="Unexpected write response"):
            await client.put_file("o", "r", "a.txt", b"x", message="m", branch="main")


# -----------------------------------------------------------------------------
# Test: Error Mapping
# -----------------------------------------------------------------------------
class TestHandleError:
    """Tests for mapping githubkit failures."""

    def test_rate_limited(self, client: GitHubClient):
        headers = make_rate_limit_headers(remaining=0, reset_in_seconds=120)

        error = client._handle_error(make_request_failed(403, {"message": "rate"}, headers))

        assert isinstance(error, GitHubRateLimitError)
        assert error.status_code == 403
        assert error.reset_at is not None
        assert error.reset_at > datetime.now(UTC)

    def test_secondary_rate_limit_429(self, client: GitHubClient):
        headers = {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "not-a-number"}

        error = client._handle_error(make_request_failed(429, None, headers))

        assert isinstance(error, GitHubRateLimitError)
        assert error.reset_at is None

    def test_forbidden_with_quota_left(self, client: GitHubClient):
        headers = make_rate_limit_headers(remaining=10)

        error = client._handle_error(
            make_request_failed(403, {"message": "Resource not accessible"}, headers)
        )

        assert not isinstance(error, GitHubRateLimitError)
        assert "Resource not accessible" in str(error)

    def test_not_found(self, client: GitHubClient):
        error = client._handle_error(make_request_failed(404, {"message": "Not Found"}))

        assert isinstance(error, GitHubNotFoundError)

    def test_body_without_message(self, client: GitHubClient):
        error = client._handle_error(make_request_failed(500, ["unexpected"]))

        assert str(error) == "GitHub API error (500): HTTP 500"


class TestHeadersToDict:
    """Tests for headers_to_dict()."""

    def test_lowercases_names(self):
        assert headers_to_dict({"X-RateLimit-Remaining": 5}) == {"x-ratelimit-remaining": "5"}

    def test_none(self):
        assert headers_to_dict(None) == {}

    def test_pairs(self):
        assert headers_to_dict([("ETag", "abc")]) == {"etag": "abc"}
