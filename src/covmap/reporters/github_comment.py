"""GitHub comment reporter — posts the coverage summary to the pull request.

The comment shows project-wide line coverage next to the coverage of the
changed files, the gating threshold, and a per-file breakdown. A hidden
marker keeps one comment per label: later runs edit it in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from covmap.analyzers.coverage import FULL_COVERAGE, format_percentage, round_half_up
from covmap.analyzers.gating import GatingMode
from covmap.utils.git import (
    GitHubAPI,
    GitHubAPIError,
    GitHubPRInfo,
    compute_comment_marker,
    get_pr_info_from_env,
)

if TYPE_CHECKING:
    from covmap.adapters.coverage.base import CoverageReport
    from covmap.analyzers.coverage import CoverageAnalysisResult
    from covmap.analyzers.gating import GatingResult

logger = logging.getLogger(__name__)

_MARKER_PREFIX = "covmap:coverage"


@dataclass
class LineTotals:
    """Hit/found line counts with a percentage."""

    lines_hit: int
    lines_found: int
    percentage: float


@dataclass
class FileBreakdown:
    """One row of the per-file table."""

    filename: str
    lines_hit: int
    lines_found: int
    percentage: float


@dataclass
class CommentData:
    """Numbers rendered into the PR comment."""

    total_coverage: LineTotals
    """Line coverage of the whole project."""

    changed_files_coverage: LineTotals
    """Lines of the changed files, with their weighted overall percentage."""

    coverage_difference: float
    """Changed-files percentage minus project percentage, rounded to 2dp."""

    file_breakdown: list[FileBreakdown] = field(default_factory=list)
    """Changed files that have coverage data, in changeset order."""


def create_comment_data(result: CoverageAnalysisResult, report: CoverageReport) -> CommentData:
    """Collect the figures shown in the PR comment."""
    summary = report.summary
    if summary.lines_found > 0:
        total_percentage = round_half_up(summary.lines_hit / summary.lines_found * 100)
    else:
        total_percentage = FULL_COVERAGE

    overall = result.summary.overall
    changed = LineTotals(
        lines_hit=overall.covered_lines,
        lines_found=overall.total_lines,
        percentage=overall.overall_percentage,
    )
    return CommentData(
        total_coverage=LineTotals(
            lines_hit=summary.lines_hit,
            lines_found=summary.lines_found,
            percentage=total_percentage,
        ),
        changed_files_coverage=changed,
        coverage_difference=round_half_up(changed.percentage - total_percentage),
        file_breakdown=[
            FileBreakdown(
                filename=file.path,
                lines_hit=file.analysis.covered_lines,
                lines_found=file.analysis.total_lines,
                percentage=file.analysis.overall_percentage,
            )
            for file in result.changed_files
            if file.has_coverage
        ],
    )


def comment_title(label: str | None = None) -> str:
    return f"Coverage Report: {label}" if label else "Coverage Report"


def render_comment_body(
    data: CommentData,
    gating: GatingResult,
    *,
    label: str | None = None,
    treemap_path: str | None = None,
) -> str:
    """Render the PR comment as markdown."""
    threshold_emoji = "✅" if gating.passed else "❌"
    diff_emoji = "📈" if data.coverage_difference >= 0 else "📉"
    diff_sign = "+" if data.coverage_difference >= 0 else ""

    if gating.mode is GatingMode.BASELINE:
        threshold_display = f"≥ Project Avg ({format_percentage(gating.effective_threshold)}%)"
    else:
        threshold_display = f"{format_percentage(gating.threshold)}%"

    total = data.total_coverage
    changed = data.changed_files_coverage
    lines = [
        f"## {comment_title(label)}",
        "",
        "| Metric | Coverage | Lines |",
        "|--------|----------|-------|",
        f"| **Total Coverage** | {format_percentage(total.percentage)}% "
        f"| {total.lines_hit}/{total.lines_found} |",
        f"| **Changed Files** | {format_percentage(changed.percentage)}% "
        f"| {changed.lines_hit}/{changed.lines_found} |",
        f"| **Difference** | {diff_emoji} {diff_sign}"
        f"{format_percentage(data.coverage_difference)}% | - |",
        f"| **Threshold** | {threshold_emoji} {threshold_display} | - |",
        "",
    ]

    if data.file_breakdown:
        lines.extend(
            [
                "### Changed Files Coverage",
                "",
                "| File | Coverage | Lines |",
                "|------|----------|-------|",
            ]
        )
        for file in data.file_breakdown:
            file_emoji = "✅" if file.percentage >= gating.effective_threshold else "❌"
            lines.append(
                f"| {file_emoji} `{file.filename}` | {format_percentage(file.percentage)}% "
                f"| {file.lines_hit}/{file.lines_found} |"
            )
        lines.append("")

    if treemap_path:
        lines.extend(
            [
                "### 📊 Coverage Treemap",
                "",
                "A treemap dataset was generated showing coverage by function/method:",
                "- 🟢 **Green**: Fully covered functions",
                "- 🟠 **Orange**: Partially covered functions",
                "- 🔴 **Red**: Uncovered functions",
                "",
                f"📎 **Dataset**: `{treemap_path}`",
                "",
            ]
        )

    lines.extend(["---", "*Coverage report generated by covmap*"])
    return "\n".join(lines)


class GitHubCommentReporter:
    """Post the coverage summary as an upserted PR comment."""

    def __init__(self, github_token: str | None = None, label: str | None = None) -> None:
        """Initialize the reporter.

        Raises:
            GitHubAPIError: If no token is available.
        """
        self._api = GitHubAPI(token=github_token)
        self._label = label
        prefix = f"{_MARKER_PREFIX}:{label}" if label else _MARKER_PREFIX
        self._marker = compute_comment_marker(prefix)

    @property
    def marker(self) -> str:
        return self._marker

    def post(
        self,
        pr_info: GitHubPRInfo,
        result: CoverageAnalysisResult,
        report: CoverageReport,
        gating: GatingResult,
        *,
        treemap_path: str | None = None,
    ) -> dict[str, str]:
        """Create or update the coverage comment.

        Returns:
            Dict with status and comment URL.

        Raises:
            GitHubAPIError: If posting the comment fails.
        """
        logger.info(
            "Posting coverage comment to PR #%d in %s/%s",
            pr_info.pr_number,
            pr_info.owner,
            pr_info.repo,
        )
        data = create_comment_data(result, report)
        body = render_comment_body(data, gating, label=self._label, treemap_path=treemap_path)
        response = self._api.upsert_comment(pr_info, f"{self._marker}\n{body}", self._marker)
        return {"status": "success", "comment_url": response.get("html_url", "")}


def post_coverage_comment_from_env(
    result: CoverageAnalysisResult,
    report: CoverageReport,
    gating: GatingResult,
    *,
    label: str | None = None,
    treemap_path: str | None = None,
) -> bool:
    """Post the coverage comment when running for a GitHub pull request.

    Failures are logged and reported as False; they never fail the run.
    """
    pr_info = get_pr_info_from_env()
    if not pr_info:
        logger.info("Not running in a GitHub Actions PR context, skipping PR comment")
        return False

    try:
        reporter = GitHubCommentReporter(label=label)
        posted = reporter.post(pr_info, result, report, gating, treemap_path=treemap_path)
    except GitHubAPIError as exc:
        logger.warning("Failed to post coverage comment: %s", exc)
        return False

    logger.info("Posted coverage comment: %s", posted.get("comment_url"))
    return True
