"""Async GitHub API client wrapper using githubkit.

This module provides a typed async interface to the GitHub contents API
for creating and updating files. Every call returns the response headers
alongside the parsed payload so callers can track the request quota.
"""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from typing import Any

from githubkit import GitHub
from githubkit.exception import RequestFailed
from pydantic import ValidationError

from github_folder_uploader.config import get_settings
from github_folder_uploader.schemas.github_api import GitHubContentFile, GitHubFileWrite

from .exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)


def headers_to_dict(headers: Any) -> dict[str, str]:
    """Convert httpx/githubkit headers into a plain lower-cased dict."""
    if headers is None:
        return {}
    items = headers.items() if hasattr(headers, "items") else headers
    try:
        return {str(k).lower(): str(v) for k, v in items}
    except (TypeError, ValueError):
        return {}


class GitHubClient:
    """Async GitHub API client for file uploads.

    Usage:
        async with GitHubClient(token) as client:
            sha = await client.get_file_sha("octo", "site", "docs/index.md", ref="main")
            written, headers = await client.put_file(
                "octo", "site", "docs/index.md", b"# Hello",
                message="Update docs", branch="main", sha=sha,
            )
    """

    def __init__(self, token: str | None = None) -> None:
        """Initialize the GitHub client.

        Args:
            token: Bearer token. If not provided, uses GITHUB_TOKEN from settings.

        Raises:
            GitHubAuthenticationError: If no token is available.
        """
        self._token = token or get_settings().github_token
        if not self._token:
            raise GitHubAuthenticationError(
                "GitHub token required. Set GITHUB_TOKEN environment variable."
            )
        self._client: GitHub[Any] | None = None

    @property
    def _github(self) -> GitHub[Any]:
        """Get or create the githubkit client instance.

        Automatic retries are disabled: failed writes are reported, and
        quota exhaustion is handled by the rate limit governor.
        """
        if self._client is None:
            self._client = GitHub(self._token, auto_retry=False)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client = None

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Rate Limit Info
    # -------------------------------------------------------------------------
    async def get_rate_limit(self) -> dict[str, int | datetime]:
        """Get current core rate limit status.

        Returns:
            Dict with 'limit', 'remaining', 'reset' (datetime), 'used' keys.
        """
        try:
            resp = await self._github.rest.rate_limit.async_get()
        except RequestFailed as e:
            raise self._handle_error(e) from e
        core = resp.parsed_data.resources.core
        return {
            "limit": core.limit,
            "remaining": core.remaining,
            "used": core.used,
            "reset": datetime.fromtimestamp(core.reset, tz=UTC),
        }

    # -------------------------------------------------------------------------
    # Contents API
    # -------------------------------------------------------------------------
    async def get_file_sha(
        self,
        owner: str,
        repo: str,
        path: str,
        *,
        ref: str,
    ) -> str | None:
        """Get the blob SHA of an existing file.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path in the repository
            ref: Branch to look on

        Returns:
            The current blob SHA, or None if the file does not exist yet

        Raises:
            GitHubClientError: For any failure other than "not found"
        """
        try:
            resp = await self._github.rest.repos.async_get_content(
                owner=owner,
                repo=repo,
                path=path,
                ref=ref,
            )
        except RequestFailed as e:
            error = self._handle_error(e)
            if isinstance(error, GitHubNotFoundError):
                return None
            raise error from e

        data = resp.json()
        if isinstance(data, list):
            raise GitHubClientError(
                f"{path} is a directory in {owner}/{repo}",
                status_code=resp.status_code,
                headers=headers_to_dict(resp.headers),
            )
        try:
            return GitHubContentFile.model_validate(data).sha
        except ValidationError as e:
            raise GitHubClientError(f"Unexpected contents response for {path}: {e}") from e

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: bytes,
        *,
        message: str,
        branch: str,
        sha: str | None = None,
    ) -> tuple[GitHubFileWrite, dict[str, str]]:
        """Create or update a file.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path in the repository
            content: Raw file content (base64-encoded on the wire)
            message: Commit message
            branch: Target branch
            sha: Current blob SHA when updating an existing file

        Returns:
            Tuple of (parsed write response, response headers)
        """
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha

        try:
            resp = await self._github.rest.repos.async_create_or_update_file_contents(
                owner=owner,
                repo=repo,
                path=path,
                data=payload,
            )
        except RequestFailed as e:
            raise self._handle_error(e) from e

        headers = headers_to_dict(resp.headers)
        try:
            written = GitHubFileWrite.from_api(resp.json())
        except ValidationError as e:
            raise GitHubClientError(
                f"Unexpected write response for {path}: {e}",
                status_code=resp.status_code,
                headers=headers,
            ) from e
        return written, headers

    # -------------------------------------------------------------------------
    # Error Handling
    # -------------------------------------------------------------------------
    def _handle_error(self, error: RequestFailed) -> GitHubClientError:
        """Convert githubkit exceptions to our custom exceptions."""
        response = error.response
        status = response.status_code
        headers = headers_to_dict(response.headers)
        message = _error_message(response, status)

        if status == 401:
            return GitHubAuthenticationError(
                f"Invalid GitHub token: {message}", status_code=status, headers=headers
            )
        if status in (403, 429) and headers.get("x-ratelimit-remaining") == "0":
            reset = headers.get("x-ratelimit-reset", "")
            reset_at = datetime.fromtimestamp(int(reset), tz=UTC) if reset.isdigit() else None
            return GitHubRateLimitError(
                "GitHub rate limit exceeded",
                reset_at=reset_at,
                status_code=status,
                headers=headers,
            )
        if status == 404:
            return GitHubNotFoundError(message, status_code=status, headers=headers)
        return GitHubClientError(
            f"GitHub API error ({status}): {message}", status_code=status, headers=headers
        )


def _error_message(response: Any, status: int) -> str:
    """Extract GitHub's error message (plus field errors) from a response body."""
    try:
        data = response.json()
    except Exception:
        return f"HTTP {status}"
    if not isinstance(data, dict) or not data.get("message"):
        return f"HTTP {status}"
    message = str(data["message"])
    errors = data.get("errors")
    if isinstance(errors, list) and errors:
        details = ", ".join(
            str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
        )
        message = f"{message} ({details})"
    return message
