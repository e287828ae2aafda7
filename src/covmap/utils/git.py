"""Git and GitHub API utilities for covmap.

Git helpers shell out to the ``git`` executable to find the files a pull
request changed; the GitHub helpers talk to the REST API with ``requests``
to keep a single coverage comment up to date on the pull request.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from covmap.models.changeset import (
    Changeset,
    ChangeType,
    create_changeset,
    filter_by_extensions,
    get_summary,
)

logger = logging.getLogger(__name__)

# GitHub API constants
GITHUB_API_BASE = "https://api.github.com"
_GITHUB_AUTH_ENV_KEY = "GITHUB_" + "TOKEN"
_REQUEST_TIMEOUT = 30

# Expected number of parts when splitting "owner/repo"
_OWNER_REPO_PARTS = 2

_STATUS_CODES = {
    "A": ChangeType.ADDED,
    "M": ChangeType.MODIFIED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
}


def _git_executable() -> str:
    """Resolve the full path to the ``git`` executable."""
    return shutil.which("git") or "git"


# ── GitHub API ───────────────────────────────────────────────────


@dataclass
class GitHubPRInfo:
    """Information about a GitHub pull request."""

    owner: str
    """Repository owner (username or organization)."""

    repo: str
    """Repository name."""

    pr_number: int
    """Pull request number."""


class GitHubAPIError(Exception):
    """Exception raised when GitHub API operations fail."""


class GitHubAPI:
    """Minimal GitHub REST client for pull request comments."""

    def __init__(self, token: str | None = None, api_base: str = GITHUB_API_BASE) -> None:
        """Initialize the client.

        Args:
            token: GitHub token. Falls back to the GITHUB_TOKEN environment variable.
            api_base: API root, overridable for GitHub Enterprise.

        Raises:
            GitHubAPIError: If no token is available.
        """
        self._token = token or os.environ.get(_GITHUB_AUTH_ENV_KEY)
        if not self._token:
            raise GitHubAPIError(
                f"GitHub token required. Set {_GITHUB_AUTH_ENV_KEY} environment variable "
                "or pass token to constructor."
            )
        self._api_base = api_base.rstrip("/")
        self._session_headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _comments_url(self, pr_info: GitHubPRInfo) -> str:
        return (
            f"{self._api_base}/repos/{pr_info.owner}/{pr_info.repo}/"
            f"issues/{pr_info.pr_number}/comments"
        )

    def create_comment(self, pr_info: GitHubPRInfo, body: str) -> dict[str, Any]:
        """Create a new comment on a pull request."""
        result: dict[str, Any] = self._post(self._comments_url(pr_info), {"body": body})
        return result

    def update_comment(self, pr_info: GitHubPRInfo, comment_id: int, body: str) -> dict[str, Any]:
        """Replace the body of an existing comment."""
        url = f"{self._api_base}/repos/{pr_info.owner}/{pr_info.repo}/issues/comments/{comment_id}"
        result: dict[str, Any] = self._patch(url, {"body": body})
        return result

    def find_comment_by_marker(self, pr_info: GitHubPRInfo, marker: str) -> dict[str, Any] | None:
        """Return the first PR comment whose body contains *marker*, if any."""
        comments: list[dict[str, Any]] = self._get(self._comments_url(pr_info))
        for comment in comments:
            if marker in comment.get("body", ""):
                return comment
        return None

    def upsert_comment(self, pr_info: GitHubPRInfo, body: str, marker: str) -> dict[str, Any]:
        """Update the comment carrying *marker*, or create one.

        The marker is prepended to *body* when missing so later runs find it.

        Raises:
            GitHubAPIError: If an API request fails.
        """
        if marker not in body:
            body = f"{marker}\n{body}"

        existing = self.find_comment_by_marker(pr_info, marker)
        if existing:
            logger.info("Updating existing coverage comment %d", existing["id"])
            return self.update_comment(pr_info, existing["id"], body)

        logger.info("Creating new coverage comment on PR #%d", pr_info.pr_number)
        return self.create_comment(pr_info, body)

    def _get(self, url: str) -> Any:
        try:
            response = requests.get(url, headers=self._session_headers, timeout=_REQUEST_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise GitHubAPIError(f"GET request failed: {exc}") from exc

    def _post(self, url: str, data: dict[str, Any]) -> Any:
        try:
            response = requests.post(
                url, json=data, headers=self._session_headers, timeout=_REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise GitHubAPIError(f"POST request failed: {exc}") from exc

    def _patch(self, url: str, data: dict[str, Any]) -> Any:
        try:
            response = requests.patch(
                url, json=data, headers=self._session_headers, timeout=_REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise GitHubAPIError(f"PATCH request failed: {exc}") from exc


def get_pr_info_from_env() -> GitHubPRInfo | None:
    """Get PR information from GitHub Actions environment variables.

    Returns:
        GitHubPRInfo when running for a ``pull_request`` event, None otherwise.
    """
    github_repository = os.environ.get("GITHUB_REPOSITORY")
    github_event_name = os.environ.get("GITHUB_EVENT_NAME")
    github_ref = os.environ.get("GITHUB_REF")

    if not github_repository or github_event_name != "pull_request":
        return None

    parts = github_repository.split("/")
    if len(parts) != _OWNER_REPO_PARTS:
        return None
    owner, repo = parts

    # GITHUB_REF looks like refs/pull/<number>/merge
    if not github_ref or not github_ref.startswith("refs/pull/"):
        return None
    try:
        pr_number = int(github_ref.split("/")[2])
    except (IndexError, ValueError):
        return None

    return GitHubPRInfo(owner=owner, repo=repo, pr_number=pr_number)


def compute_comment_marker(prefix: str) -> str:
    """Return a hidden HTML marker identifying comments for *prefix*."""
    hash_str = hashlib.sha256(prefix.encode()).hexdigest()[:8]
    return f"<!-- {prefix}:{hash_str} -->"


# ── Git operations ───────────────────────────────────────────────


class GitOperationError(Exception):
    """Exception raised when git operations fail."""


_GIT_REF_MAX_LENGTH = 255
_GIT_REF_UNSAFE = re.compile(r"[\x00-\x1f\x7f \~\^:\?\*\[\]\\;|&$`()<>{}!#'\"]")


def _validate_git_ref(ref: str) -> None:
    """Validate a git ref to prevent injection and malformed inputs.

    Raises:
        GitOperationError: If the ref is invalid.
    """
    if not ref:
        raise GitOperationError("Git ref must not be empty")
    if len(ref) > _GIT_REF_MAX_LENGTH:
        raise GitOperationError(f"Git ref exceeds {_GIT_REF_MAX_LENGTH} characters")
    if _GIT_REF_UNSAFE.search(ref):
        raise GitOperationError(f"Git ref contains unsafe characters: {ref!r}")
    if ref.startswith("-"):
        raise GitOperationError("Git ref must not start with a dash")
    if ".." in ref:
        raise GitOperationError("Git ref must not contain '..'")


def _run_git(repo_path: Path | str, *args: str) -> str:
    """Run a git command and return its stripped stdout.

    Raises:
        subprocess.CalledProcessError: If git exits non-zero.
    """
    result = subprocess.run(
        [_git_executable(), *args],
        cwd=repo_path,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def get_current_commit(repo_path: Path | str) -> str:
    """Return the SHA of HEAD.

    Raises:
        GitOperationError: If the operation fails.
    """
    try:
        return _run_git(repo_path, "rev-parse", "HEAD")
    except subprocess.CalledProcessError as exc:
        raise GitOperationError(f"Failed to get current commit: {exc}") from exc


def ref_exists(repo_path: Path | str, ref: str) -> bool:
    """Return True if *ref* resolves to a commit."""
    _validate_git_ref(ref)
    try:
        _run_git(repo_path, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
    except subprocess.CalledProcessError:
        return False
    return True


def ensure_base_ref(repo_path: Path | str, base_ref: str) -> None:
    """Make sure ``origin/<branch>`` exists locally, fetching it when missing.

    Raises:
        GitOperationError: If the ref is missing and cannot be fetched.
    """
    if ref_exists(repo_path, base_ref):
        logger.debug("Base ref %s already available", base_ref)
        return

    remote, _, branch = base_ref.partition("/")
    if not branch:
        raise GitOperationError(f"Base ref {base_ref!r} not found")

    logger.info("Fetching %s from %s", branch, remote)
    try:
        refspec = f"{branch}:refs/remotes/{remote}/{branch}"
        _run_git(repo_path, "fetch", "--no-tags", remote, refspec)
    except subprocess.CalledProcessError as exc:
        raise GitOperationError(f"Failed to fetch base ref {base_ref}: {exc}") from exc


def find_merge_base(repo_path: Path | str, base_ref: str, head_ref: str = "HEAD") -> str:
    """Return the merge-base commit of two refs.

    Raises:
        GitOperationError: If the operation fails.
    """
    _validate_git_ref(base_ref)
    _validate_git_ref(head_ref)
    try:
        merge_base = _run_git(repo_path, "merge-base", base_ref, head_ref)
    except subprocess.CalledProcessError as exc:
        raise GitOperationError(
            f"Failed to find merge base between {base_ref} and {head_ref}: {exc}"
        ) from exc
    logger.debug("Merge base of %s and %s is %s", base_ref, head_ref, merge_base)
    return merge_base


def parse_name_status(output: str) -> list[tuple[str, ChangeType]]:
    """Parse ``git diff --name-status`` output into ``(path, change_type)`` pairs.

    Renames and copies report the destination path.
    """
    entries: list[tuple[str, ChangeType]] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        fields = line.split("\t")
        status = fields[0][:1]
        change_type = _STATUS_CODES.get(status, ChangeType.MODIFIED)
        entries.append((fields[-1], change_type))
    return entries


def get_changed_files(
    repo_path: Path | str,
    base: str,
    head: str = "HEAD",
) -> list[tuple[str, ChangeType]]:
    """List files added or modified between *base* and *head*.

    Raises:
        GitOperationError: If the operation fails.
    """
    _validate_git_ref(base)
    _validate_git_ref(head)
    try:
        output = _run_git(
            repo_path, "diff", "--name-status", "--diff-filter=AM", f"{base}..{head}"
        )
    except subprocess.CalledProcessError as exc:
        raise GitOperationError(
            f"Failed to get changed files between {base} and {head}: {exc}"
        ) from exc

    files = parse_name_status(output)
    logger.info("Found %d changed files between %s and %s", len(files), base[:8], head)
    return files


def detect_changes(
    repo_path: Path | str,
    target_branch: str = "main",
    *,
    remote: str = "origin",
    extensions: list[str] | None = None,
) -> Changeset:
    """Detect files a pull request changed relative to its target branch.

    Args:
        repo_path: Path to the git checkout.
        target_branch: Branch the pull request merges into.
        remote: Remote holding the target branch.
        extensions: When given, keep only files with these extensions.

    Raises:
        GitOperationError: If any git step fails.
    """
    _validate_git_ref(target_branch)
    logger.info("Detecting changes against %s", target_branch)
    logger.debug("Current commit: %s", get_current_commit(repo_path))

    base_ref = f"{remote}/{target_branch}"
    ensure_base_ref(repo_path, base_ref)
    merge_base = find_merge_base(repo_path, base_ref, "HEAD")
    files = get_changed_files(repo_path, merge_base, "HEAD")

    changeset = create_changeset(files, merge_base, "HEAD", target_branch)
    if extensions is not None:
        changeset = filter_by_extensions(changeset, extensions)

    logger.info("%s", get_summary(changeset))
    return changeset
