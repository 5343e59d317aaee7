"""Relative path validation and normalization.

Every path uploaded to a repository passes through here first. The
validator is pure: it never touches the filesystem and holds no state
beyond its configuration.

Rules:
- no empty paths, null bytes, absolute paths or drive letters
- no double separators or trailing separators
- ``.`` segments are dropped, ``..`` removes the previous segment and
  may never climb above the root
- no reserved device names (CON, NUL, COM1, ...)
- no characters outside what every filesystem accepts
- configured extensions, directories and file names are blocked
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from github_folder_uploader.config import PathConfig, get_settings
from github_folder_uploader.exceptions import PathError

RESERVED_NAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)

_INVALID_CHARS = re.compile(r'[<>:"|?*]')
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


@dataclass(frozen=True)
class PathCheck:
    """Outcome of validating one path."""

    valid: bool
    normalized: str = ""
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.valid


def _reject(reason: str) -> PathCheck:
    return PathCheck(valid=False, reason=reason)


def validate_path(path: str, config: PathConfig | None = None) -> PathCheck:
    """Validate a relative path and return its normalized form.

    Args:
        path: Candidate path relative to the repository root
        config: Blocking rules (defaults to settings)

    Returns:
        PathCheck with ``valid``, the ``normalized`` path and a ``reason``
        when the path was rejected
    """
    config = config or get_settings().paths

    if not isinstance(path, str) or not path:
        return _reject("empty path")
    if "\0" in path:
        return _reject("null byte")

    candidate = path.replace("\\", "/")

    if len(candidate) > config.max_length:
        return _reject(f"longer than {config.max_length} characters")
    if candidate.startswith("/") or _DRIVE_LETTER.match(candidate):
        return _reject("absolute path")
    if "//" in candidate:
        return _reject("double separator")
    if candidate.endswith("/"):
        return _reject("trailing separator")
    if _INVALID_CHARS.search(candidate):
        return _reject("invalid character")

    segments: list[str] = []
    for part in candidate.split("/"):
        if part == ".":
            continue
        if part == "..":
            if not segments:
                return _reject("escapes the root")
            segments.pop()
            continue
        if part != part.strip():
            return _reject("leading or trailing whitespace")
        segments.append(part)

    if not segments:
        return _reject("empty path")

    for segment in segments:
        if segment.lower() in config.blocked_segments:
            return _reject(f"blocked directory {segment!r}")
        if segment.split(".")[0].upper() in RESERVED_NAMES:
            return _reject(f"reserved name {segment!r}")

    if len(segments) > 1 and segments[0].lower() in config.blocked_prefixes:
        return _reject(f"blocked directory {segments[0]!r}")

    name = segments[-1]
    if name.lower() in config.blocked_filenames:
        return _reject(f"blocked file {name!r}")
    if PurePosixPath(name).suffix.lower() in config.blocked_extensions:
        return _reject(f"blocked extension {PurePosixPath(name).suffix!r}")

    return PathCheck(valid=True, normalized="/".join(segments))


def join_base_path(base_path: str, path: str) -> str:
    """Prefix ``path`` with a repository base directory.

    The result still has to go through :func:`validate_path`.
    """
    base = base_path.replace("\\", "/").strip().strip("/")
    if not base:
        return path
    return f"{base}/{path}"


class PathValidator:
    """Path validator bound to one set of rules.

    Usage:
        validator = PathValidator()
        check = validator.validate("docs/../README.md")
        if check:
            print(check.normalized)  # README.md
    """

    def __init__(self, config: PathConfig | None = None) -> None:
        self._config = config or get_settings().paths

    @property
    def config(self) -> PathConfig:
        return self._config

    def validate(self, path: str) -> PathCheck:
        return validate_path(path, self._config)

    def is_valid(self, path: str) -> bool:
        return self.validate(path).valid

    def normalize(self, path: str) -> str:
        """Return the normalized path or raise PathError."""
        check = self.validate(path)
        if not check.valid:
            raise PathError(path, check.reason or "invalid")
        return check.normalized
