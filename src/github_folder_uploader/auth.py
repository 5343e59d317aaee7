"""Credential resolution.

The upload core treats tokens as opaque. A token provider turns the
``credential_ref`` of a batch into a bearer token when the batch starts.
"""

from __future__ import annotations

from typing import Protocol

from github_folder_uploader.config import get_settings
from github_folder_uploader.exceptions import AuthError
from github_folder_uploader.logging import get_logger

logger = get_logger(__name__)


class TokenProvider(Protocol):
    """Resolves a credential reference to a bearer token."""

    async def get_token(self, credential_ref: str) -> str:
        """Return a token for ``credential_ref`` or raise AuthError."""
        ...


class StaticTokenProvider:
    """Token provider backed by fixed tokens.

    Usage:
        provider = StaticTokenProvider()              # GITHUB_TOKEN for "default"
        provider = StaticTokenProvider({"ci": "ghp_..."})
        token = await provider.get_token("default")
    """

    def __init__(self, tokens: dict[str, str] | None = None) -> None:
        if tokens is None:
            tokens = {"default": get_settings().github_token}
        self._tokens = dict(tokens)

    async def get_token(self, credential_ref: str) -> str:
        token = self._tokens.get(credential_ref, "")
        if not token:
            logger.warning("No token configured for credential {!r}", credential_ref)
            raise AuthError(f"No token available for credential {credential_ref!r}")
        return token
