"""CI context detection and GitHub Actions step outputs."""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

# Expected number of parts when splitting "owner/repo"
_OWNER_REPO_PARTS = 2

_PR_EVENTS = ("pull_request", "pull_request_target")


@dataclass
class CIContext:
    """Detected CI/PR execution context."""

    is_ci: bool
    """Running in CI environment."""

    is_pr: bool
    """Running in context of a pull request."""

    is_github_actions: bool = False
    """Running inside GitHub Actions (workflow commands are honoured)."""

    base_branch: str | None = None
    """Base/target branch for PR."""

    commit_sha: str | None = None
    """Current commit SHA."""

    repo_owner: str | None = None
    """Repository owner (org or user)."""

    repo_name: str | None = None
    """Repository name."""

    output_file: str | None = None
    """Path of the step-output file (``$GITHUB_OUTPUT``)."""


def detect_ci_context() -> CIContext:
    """Detect CI and PR context from environment variables.

    GitHub Actions is recognised in detail; any other CI only through the
    generic ``CI=true`` flag.
    """
    if os.getenv("GITHUB_ACTIONS") == "true":
        is_pr = os.getenv("GITHUB_EVENT_NAME", "") in _PR_EVENTS

        repo_full = os.getenv("GITHUB_REPOSITORY", "")
        repo_parts = repo_full.split("/") if repo_full else []
        has_repo = len(repo_parts) == _OWNER_REPO_PARTS

        return CIContext(
            is_ci=True,
            is_pr=is_pr,
            is_github_actions=True,
            base_branch=(os.getenv("GITHUB_BASE_REF") or None) if is_pr else None,
            commit_sha=os.getenv("GITHUB_SHA"),
            repo_owner=repo_parts[0] if has_repo else None,
            repo_name=repo_parts[1] if has_repo else None,
            output_file=os.getenv("GITHUB_OUTPUT") or None,
        )

    return CIContext(is_ci=os.getenv("CI") == "true", is_pr=False)


def write_github_outputs(
    outputs: Mapping[str, object],
    output_file: str | Path | None = None,
) -> bool:
    """Append step outputs to the ``$GITHUB_OUTPUT`` file.

    Values are stringified; booleans become ``true``/``false``. Multi-line
    values use the heredoc form with a random delimiter.

    Returns:
        True if outputs were written, False when no output file is configured.
    """
    target = output_file or os.getenv("GITHUB_OUTPUT")
    if not target:
        logger.debug("GITHUB_OUTPUT not set; skipping %d outputs", len(outputs))
        return False

    chunks: list[str] = []
    for name, value in outputs.items():
        text = _format_output_value(value)
        if "\n" in text:
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            chunks.append(f"{name}<<{delimiter}\n{text}\n{delimiter}\n")
        else:
            chunks.append(f"{name}={text}\n")

    with Path(target).open("a", encoding="utf-8") as handle:
        handle.write("".join(chunks))

    logger.debug("Wrote %d step outputs to %s", len(outputs), target)
    return True


def _format_output_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)
