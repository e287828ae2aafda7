"""Changeset models: the list of files changed by a pull request."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

# Number of parts when splitting a pattern on '**'
_SINGLE_STAR_PARTS = 2  # e.g. **/*.py  -> ['', '/*.py']
_DOUBLE_STAR_PARTS = 3  # e.g. **/foo/** -> ['', '/foo/', '']

_STATUS_COLUMN_WIDTH = 8

DEFAULT_EXTENSIONS = [
    ".ts",
    ".js",
    ".tsx",
    ".jsx",
    ".py",
    ".java",
    ".cs",
    ".cpp",
    ".c",
    ".go",
    ".rs",
]

DEFAULT_SOURCE_PATTERNS = [f"**/*{ext}" for ext in DEFAULT_EXTENSIONS]

DEFAULT_TEST_PATTERNS = [
    "**/*.test.*",
    "**/*.spec.*",
    "**/*.mock.*",
    "**/__tests__/**",
    "**/tests/**",
    "**/test/**",
]


class ChangeType(Enum):
    """Type of change detected in git diff."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass
class FileChange:
    """A changed file and how it changed."""

    path: str
    """Path to the changed file, relative to the repository root."""

    change_type: ChangeType = ChangeType.MODIFIED
    """Type of change (added, modified, deleted, renamed)."""


@dataclass
class Changeset:
    """The set of files changed between a base and a head commit."""

    base_commit: str
    """Merge-base commit the changes are measured from."""

    head_commit: str = "HEAD"
    """Commit containing the changes."""

    target_branch: str = "main"
    """Branch the pull request targets."""

    files: list[FileChange] = field(default_factory=list)
    """Changed files in diff order."""

    @property
    def total_files(self) -> int:
        """Return the number of changed files."""
        return len(self.files)

    @property
    def is_empty(self) -> bool:
        """Return True when no files changed."""
        return self.total_files == 0


def create_changeset(
    files: Iterable[str | tuple[str, ChangeType]],
    base_commit: str,
    head_commit: str = "HEAD",
    target_branch: str = "main",
) -> Changeset:
    """Build a Changeset from paths or ``(path, change_type)`` pairs.

    Bare paths are recorded as modified.
    """
    changes: list[FileChange] = []
    for entry in files:
        if isinstance(entry, tuple):
            path, change_type = entry
            changes.append(FileChange(path=path, change_type=change_type))
        else:
            changes.append(FileChange(path=entry))
    return Changeset(
        base_commit=base_commit,
        head_commit=head_commit,
        target_branch=target_branch,
        files=changes,
    )


def filter_by_extensions(changeset: Changeset, extensions: Sequence[str]) -> Changeset:
    """Keep only files whose path ends with one of *extensions*."""
    kept = [f for f in changeset.files if any(f.path.endswith(ext) for ext in extensions)]
    return replace(changeset, files=kept)


def split_patterns(patterns: str | Sequence[str] | None) -> list[str]:
    """Normalize a comma-separated string (or list) of globs, dropping blanks."""
    if patterns is None:
        return []
    items = patterns.split(",") if isinstance(patterns, str) else list(patterns)
    return [item.strip() for item in items if item and item.strip()]


def filter_by_patterns(
    changeset: Changeset,
    source_patterns: str | Sequence[str] | None = None,
    test_patterns: str | Sequence[str] | None = None,
) -> Changeset:
    """Keep files matching a source pattern and no test pattern.

    Blank or missing pattern lists fall back to the defaults.
    """
    sources = split_patterns(source_patterns) or DEFAULT_SOURCE_PATTERNS
    tests = split_patterns(test_patterns) or DEFAULT_TEST_PATTERNS

    kept = [
        f
        for f in changeset.files
        if matches_any(f.path, sources) and not matches_any(f.path, tests)
    ]
    return replace(changeset, files=kept)


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Return True if *path* matches at least one glob pattern."""
    return any(_match_single(path, pattern) for pattern in patterns)


def _match_one_doublestar(path: str, parts: list[str]) -> bool:
    """Match a path against a pattern split into exactly two parts on ``**``.

    Handles patterns like ``**/*.py``, ``src/**``, and ``src/**/test.py``.
    """
    prefix = parts[0].rstrip("/")
    suffix = parts[1].lstrip("/")

    if not prefix and not suffix:
        return True

    # Pattern like **/*.py -> prefix='', suffix='*.py'
    if not prefix:
        segments = path.split("/")
        return any(fnmatch.fnmatch("/".join(segments[i:]), suffix) for i in range(len(segments)))

    # Pattern like src/** -> prefix='src', suffix=''
    if not suffix:
        return path.startswith(prefix + "/") or path == prefix

    # Pattern like src/**/test.py -> prefix='src', suffix='test.py'
    if not path.startswith(prefix + "/"):
        return False
    rest = path[len(prefix) + 1 :]
    rest_segments = rest.split("/")
    return any(
        fnmatch.fnmatch("/".join(rest_segments[i:]), suffix) for i in range(len(rest_segments))
    )


def _match_single(path: str, pattern: str) -> bool:
    """Match a single path against a glob pattern with ``**`` support."""
    if "**" not in pattern:
        return fnmatch.fnmatch(path, pattern)

    parts = pattern.split("**")

    if len(parts) == _SINGLE_STAR_PARTS:
        return _match_one_doublestar(path, parts)

    # Pattern like **/tests/** -> any directory segment matches the middle
    if len(parts) == _DOUBLE_STAR_PARTS and not parts[0] and not parts[2]:
        middle = parts[1].strip("/")
        if middle:
            directories = path.split("/")[:-1]
            return any(fnmatch.fnmatch(seg, middle) for seg in directories)

    return fnmatch.fnmatch(path, pattern)


def get_summary(changeset: Changeset) -> str:
    """Return a one-line description of the changeset."""
    if changeset.is_empty:
        return "No files changed"

    total = changeset.total_files
    file_word = "file" if total == 1 else "files"
    return f"{total} {file_word} changed compared to {changeset.target_branch}"


def format_changeset(changeset: Changeset) -> str:
    """Return a multi-line, human-readable listing of the changeset."""
    lines = [
        "Changeset Summary:",
        f"  Base: {changeset.base_commit}",
        f"  Head: {changeset.head_commit}",
        f"  Target Branch: {changeset.target_branch}",
        f"  Total Files: {changeset.total_files}",
        "",
    ]

    if changeset.files:
        lines.append("Changed Files:")
        lines.extend(
            f"  {change.change_type.value.ljust(_STATUS_COLUMN_WIDTH)} {change.path}"
            for change in changeset.files
        )
    else:
        lines.append("No files changed")

    return "\n".join(lines)
