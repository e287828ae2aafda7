"""Tests for git and GitHub API utilities."""

from __future__ import annotations

import os
import subprocess
from unittest import mock

import pytest
import requests

from covmap.models.changeset import ChangeType
from covmap.utils.git import (
    GitHubAPI,
    GitHubAPIError,
    GitHubPRInfo,
    GitOperationError,
    _validate_git_ref,
    compute_comment_marker,
    detect_changes,
    ensure_base_ref,
    find_merge_base,
    get_changed_files,
    get_pr_info_from_env,
    parse_name_status,
    ref_exists,
)

_PR = GitHubPRInfo(owner="test-owner", repo="test-repo", pr_number=42)


def _response(payload: object) -> mock.Mock:
    response = mock.Mock()
    response.json.return_value = payload
    return response


def _completed(stdout: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=["git"], returncode=0, stdout=stdout, stderr="")


def _git_error(*args: str) -> subprocess.CalledProcessError:
    return subprocess.CalledProcessError(returncode=1, cmd=["git", *args])


# ── GitHub API ───────────────────────────────────────────────────


class TestGitHubAPI:
    """Tests for GitHubAPI class."""

    def test_init_with_token(self) -> None:
        api = GitHubAPI(token="test-token")  # noqa: S106
        assert api._token == "test-token"  # noqa: S105

    def test_init_from_env(self) -> None:
        with mock.patch.dict(os.environ, {"GITHUB_TOKEN": "env-token"}):
            api = GitHubAPI()
            assert api._token == "env-token"  # noqa: S105

    def test_init_no_token_raises(self) -> None:
        with (
            mock.patch.dict(os.environ, {}, clear=True),
            pytest.raises(GitHubAPIError, match="GitHub token required"),
        ):
            GitHubAPI()

    @mock.patch("covmap.utils.git.requests.post")
    def test_create_comment(self, mock_post: mock.Mock) -> None:
        """Creating a comment posts to the issue comments endpoint."""
        mock_post.return_value = _response({"id": 123})

        api = GitHubAPI(token="test-token")  # noqa: S106
        result = api.create_comment(_PR, "Test comment")

        assert result["id"] == 123
        url = mock_post.call_args[0][0]
        assert url == "https://api.github.com/repos/test-owner/test-repo/issues/42/comments"
        assert mock_post.call_args[1]["json"] == {"body": "Test comment"}
        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer test-token"

    @mock.patch("covmap.utils.git.requests.patch")
    def test_update_comment(self, mock_patch: mock.Mock) -> None:
        mock_patch.return_value = _response({"id": 7})

        api = GitHubAPI(token="test-token")  # noqa: S106
        api.update_comment(_PR, 7, "New body")

        assert mock_patch.call_args[0][0].endswith("/repos/test-owner/test-repo/issues/comments/7")
        assert mock_patch.call_args[1]["json"] == {"body": "New body"}

    @mock.patch("covmap.utils.git.requests.get")
    def test_find_comment_by_marker(self, mock_get: mock.Mock) -> None:
        mock_get.return_value = _response(
            [{"id": 1, "body": "unrelated"}, {"id": 2, "body": "<!-- m -->\nreport"}]
        )

        api = GitHubAPI(token="test-token")  # noqa: S106

        assert api.find_comment_by_marker(_PR, "<!-- m -->") == {
            "id": 2,
            "body": "<!-- m -->\nreport",
        }
        assert api.find_comment_by_marker(_PR, "<!-- other -->") is None

    @mock.patch("covmap.utils.git.requests.patch")
    @mock.patch("covmap.utils.git.requests.post")
    @mock.patch("covmap.utils.git.requests.get")
    def test_upsert_updates_existing(
        self, mock_get: mock.Mock, mock_post: mock.Mock, mock_patch: mock.Mock
    ) -> None:
        """An existing marked comment is edited in place."""
        mock_get.return_value = _response([{"id": 9, "body": "<!-- m -->\nold"}])
        mock_patch.return_value = _response({"id": 9})

        api = GitHubAPI(token="test-token")  # noqa: S106
        api.upsert_comment(_PR, "<!-- m -->\nnew", "<!-- m -->")

        mock_post.assert_not_called()
        assert mock_patch.call_args[1]["json"] == {"body": "<!-- m -->\nnew"}

    @mock.patch("covmap.utils.git.requests.post")
    @mock.patch("covmap.utils.git.requests.get")
    def test_upsert_creates_and_prepends_marker(
        self, mock_get: mock.Mock, mock_post: mock.Mock
    ) -> None:
        """Without a marked comment a new one is created carrying the marker."""
        mock_get.return_value = _response([])
        mock_post.return_value = _response({"id": 10})

        api = GitHubAPI(token="test-token")  # noqa: S106
        api.upsert_comment(_PR, "body", "<!-- m -->")

        assert mock_post.call_args[1]["json"] == {"body": "<!-- m -->\nbody"}

    @mock.patch("covmap.utils.git.requests.get")
    def test_request_failure_raises_api_error(self, mock_get: mock.Mock) -> None:
        mock_get.side_effect = requests.ConnectionError("boom")

        api = GitHubAPI(token="test-token")  # noqa: S106

        with pytest.raises(GitHubAPIError, match="GET request failed"):
            api.find_comment_by_marker(_PR, "<!-- m -->")

    @mock.patch("covmap.utils.git.requests.post")
    def test_http_error_raises_api_error(self, mock_post: mock.Mock) -> None:
        response = mock.Mock()
        response.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")
        mock_post.return_value = response

        api = GitHubAPI(token="test-token")  # noqa: S106

        with pytest.raises(GitHubAPIError, match="403"):
            api.create_comment(_PR, "body")


class TestGetPRInfoFromEnv:
    def test_pull_request_event(self) -> None:
        env = {
            "GITHUB_REPOSITORY": "acme/widgets",
            "GITHUB_EVENT_NAME": "pull_request",
            "GITHUB_REF": "refs/pull/17/merge",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            info = get_pr_info_from_env()
        assert info == GitHubPRInfo(owner="acme", repo="widgets", pr_number=17)

    def test_pull_request_target_event_is_ignored(self) -> None:
        env = {
            "GITHUB_REPOSITORY": "acme/widgets",
            "GITHUB_EVENT_NAME": "pull_request_target",
            "GITHUB_REF": "refs/heads/main",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            assert get_pr_info_from_env() is None

    @pytest.mark.parametrize(
        "env",
        [
            {},
            {"GITHUB_REPOSITORY": "acme/widgets", "GITHUB_EVENT_NAME": "push"},
            {
                "GITHUB_REPOSITORY": "acme/widgets",
                "GITHUB_EVENT_NAME": "pull_request",
                "GITHUB_REF": "refs/heads/main",
            },
            {
                "GITHUB_REPOSITORY": "not-a-slug",
                "GITHUB_EVENT_NAME": "pull_request",
                "GITHUB_REF": "refs/pull/1/merge",
            },
        ],
    )
    def test_not_a_pull_request(self, env: dict[str, str]) -> None:
        with mock.patch.dict(os.environ, env, clear=True):
            assert get_pr_info_from_env() is None


def test_compute_comment_marker_is_stable() -> None:
    marker = compute_comment_marker("covmap:coverage")

    assert marker.startswith("<!-- covmap:coverage:")
    assert marker.endswith(" -->")
    assert marker == compute_comment_marker("covmap:coverage")
    assert marker != compute_comment_marker("covmap:coverage:frontend")


# ── Git refs ─────────────────────────────────────────────────────


class TestValidateGitRef:
    @pytest.mark.parametrize("ref", ["main", "origin/main", "release/1.2", "abc123"])
    def test_valid(self, ref: str) -> None:
        _validate_git_ref(ref)

    @pytest.mark.parametrize("ref", ["", "-rf", "a..b", "main;rm", "x y", "a" * 256])
    def test_invalid(self, ref: str) -> None:
        with pytest.raises(GitOperationError):
            _validate_git_ref(ref)


class TestRefs:
    @mock.patch("covmap.utils.git.subprocess.run")
    def test_ref_exists(self, mock_run: mock.Mock) -> None:
        mock_run.return_value = _completed("abc\n")

        assert ref_exists("/repo", "origin/main")
        args = mock_run.call_args[0][0]
        assert args[1:] == ["rev-parse", "--verify", "--quiet", "origin/main^{commit}"]
        assert mock_run.call_args[1]["cwd"] == "/repo"

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_ref_missing(self, mock_run: mock.Mock) -> None:
        mock_run.side_effect = _git_error("rev-parse")

        assert not ref_exists("/repo", "origin/main")

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_ensure_base_ref_fetches_missing_branch(self, mock_run: mock.Mock) -> None:
        mock_run.side_effect = [_git_error("rev-parse"), _completed()]

        ensure_base_ref("/repo", "origin/main")

        fetch_args = mock_run.call_args_list[1][0][0]
        assert fetch_args[1:] == ["fetch", "--no-tags", "origin", "main:refs/remotes/origin/main"]

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_ensure_base_ref_skips_fetch_when_present(self, mock_run: mock.Mock) -> None:
        mock_run.return_value = _completed("abc")

        ensure_base_ref("/repo", "origin/main")

        assert mock_run.call_count == 1

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_ensure_base_ref_fetch_failure(self, mock_run: mock.Mock) -> None:
        mock_run.side_effect = [_git_error("rev-parse"), _git_error("fetch")]

        with pytest.raises(GitOperationError, match="Failed to fetch base ref"):
            ensure_base_ref("/repo", "origin/main")

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_find_merge_base(self, mock_run: mock.Mock) -> None:
        mock_run.return_value = _completed("deadbeef\n")

        assert find_merge_base("/repo", "origin/main") == "deadbeef"
        assert mock_run.call_args[0][0][1:] == ["merge-base", "origin/main", "HEAD"]

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_find_merge_base_failure(self, mock_run: mock.Mock) -> None:
        mock_run.side_effect = _git_error("merge-base")

        with pytest.raises(GitOperationError, match="Failed to find merge base"):
            find_merge_base("/repo", "origin/main")


# ── Changed files ────────────────────────────────────────────────


class TestParseNameStatus:
    def test_status_codes(self) -> None:
        output = "A\tsrc/new.ts\nM\tsrc/old.ts\nD\tsrc/gone.ts\n"

        assert parse_name_status(output) == [
            ("src/new.ts", ChangeType.ADDED),
            ("src/old.ts", ChangeType.MODIFIED),
            ("src/gone.ts", ChangeType.DELETED),
        ]

    def test_rename_reports_destination(self) -> None:
        assert parse_name_status("R087\tsrc/a.ts\tsrc/b.ts") == [("src/b.ts", ChangeType.RENAMED)]

    def test_blank_lines_and_unknown_codes(self) -> None:
        assert parse_name_status("\n\nT\tsrc/link.ts\n") == [("src/link.ts", ChangeType.MODIFIED)]


class TestGetChangedFiles:
    @mock.patch("covmap.utils.git.subprocess.run")
    def test_diff_arguments(self, mock_run: mock.Mock) -> None:
        mock_run.return_value = _completed("A\tsrc/new.ts\nM\tsrc/old.ts\n")

        files = get_changed_files("/repo", "abc123")

        assert files == [("src/new.ts", ChangeType.ADDED), ("src/old.ts", ChangeType.MODIFIED)]
        assert mock_run.call_args[0][0][1:] == [
            "diff",
            "--name-status",
            "--diff-filter=AM",
            "abc123..HEAD",
        ]

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_failure(self, mock_run: mock.Mock) -> None:
        mock_run.side_effect = _git_error("diff")

        with pytest.raises(GitOperationError, match="Failed to get changed files"):
            get_changed_files("/repo", "abc123")

    def test_rejects_unsafe_refs(self) -> None:
        with pytest.raises(GitOperationError):
            get_changed_files("/repo", "abc;rm -rf /")


class TestDetectChanges:
    @staticmethod
    def _fake_git(args: list[str], **_: object) -> subprocess.CompletedProcess[str]:
        command = args[1]
        if command == "rev-parse" and args[2] == "HEAD":
            return _completed("headsha\n")
        if command == "rev-parse":
            return _completed("basesha\n")
        if command == "merge-base":
            return _completed("mergebase\n")
        if command == "diff":
            return _completed("A\tsrc/new.ts\nM\tdocs/readme.md\n")
        raise AssertionError(f"unexpected git call: {args}")

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_builds_changeset(self, mock_run: mock.Mock) -> None:
        mock_run.side_effect = self._fake_git

        changeset = detect_changes("/repo", "develop")

        assert changeset.base_commit == "mergebase"
        assert changeset.head_commit == "HEAD"
        assert changeset.target_branch == "develop"
        assert [(f.path, f.change_type) for f in changeset.files] == [
            ("src/new.ts", ChangeType.ADDED),
            ("docs/readme.md", ChangeType.MODIFIED),
        ]
        merge_call = next(c for c in mock_run.call_args_list if c[0][0][1] == "merge-base")
        assert merge_call[0][0][2] == "origin/develop"

    @mock.patch("covmap.utils.git.subprocess.run")
    def test_extension_filter(self, mock_run: mock.Mock) -> None:
        mock_run.side_effect = self._fake_git

        changeset = detect_changes("/repo", extensions=[".ts"])

        assert [f.path for f in changeset.files] == ["src/new.ts"]

    def test_rejects_unsafe_branch(self) -> None:
        with pytest.raises(GitOperationError):
            detect_changes("/repo", "main;reboot")
