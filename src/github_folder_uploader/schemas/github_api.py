"""Pydantic schemas for parsing GitHub contents API responses.

Only the fields the uploader reads are modelled; everything else in the
payload is ignored.
See: https://docs.github.com/en/rest/repos/contents
"""

from pydantic import BaseModel, ConfigDict, Field


class GitHubContentFile(BaseModel):
    """Existing file returned by ``GET /repos/{owner}/{repo}/contents/{path}``."""

    model_config = ConfigDict(extra="ignore")

    sha: str = Field(description="Blob SHA of the current file")
    path: str = Field(description="Path of the file in the repository")
    type: str = Field(default="file", description="Content type (file, dir, symlink)")
    size: int = Field(default=0, description="File size in bytes")


class GitHubCommitRef(BaseModel):
    """Commit object embedded in a contents write response."""

    model_config = ConfigDict(extra="ignore")

    sha: str = Field(description="Commit SHA")
    html_url: str | None = Field(default=None, description="Commit URL")


class GitHubFileWrite(BaseModel):
    """Response of ``PUT /repos/{owner}/{repo}/contents/{path}``."""

    model_config = ConfigDict(extra="ignore")

    content: GitHubContentFile | None = Field(description="The written file")
    commit: GitHubCommitRef = Field(description="The commit that wrote it")
    html_url: str | None = Field(default=None, description="Browser URL of the file")

    @classmethod
    def from_api(cls, data: dict) -> "GitHubFileWrite":
        """Parse the raw API payload, lifting ``content.html_url`` to the top."""
        content = data.get("content") or {}
        return cls.model_validate({**data, "html_url": content.get("html_url")})
