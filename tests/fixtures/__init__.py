"""Test fixtures for GitHub Folder Uploader."""

from .fake_client import FakeGitHubClient
from .github_responses import (
    COMMIT_SHA,
    EXISTING_FILE_SHA,
    GITHUB_CONTENT_DIR_RESPONSE,
    GITHUB_CONTENT_FILE_RESPONSE,
    GITHUB_FILE_WRITE_RESPONSE,
    NEW_BLOB_SHA,
    make_file_write_response,
)

__all__ = [
    # In-memory GitHub client
    "FakeGitHubClient",
    # Mock GitHub API responses
    "COMMIT_SHA",
    "EXISTING_FILE_SHA",
    "GITHUB_CONTENT_DIR_RESPONSE",
    "GITHUB_CONTENT_FILE_RESPONSE",
    "GITHUB_FILE_WRITE_RESPONSE",
    "NEW_BLOB_SHA",
    "make_file_write_response",
]
