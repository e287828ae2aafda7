"""Coverage gating: pass/fail decision for a pull request.

Two modes, selected by the threshold alone:

- ``standard`` (threshold != 0): the PR's weighted overall coverage must
  reach the threshold.
- ``baseline`` (threshold == 0): the PR's coverage must reach the project's
  own line coverage, computed from the full report.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from covmap.analyzers.coverage import FULL_COVERAGE, format_percentage

if TYPE_CHECKING:
    from covmap.adapters.coverage.base import ReportSummary
    from covmap.analyzers.coverage import CoverageAnalysisResult

logger = logging.getLogger(__name__)

BASELINE_THRESHOLD = 0


class GatingMode(Enum):
    """How the acceptance threshold is chosen."""

    STANDARD = "standard"
    BASELINE = "baseline"


@dataclass
class GatingResult:
    """Outcome of a gating evaluation."""

    passed: bool
    """True when the PR coverage is acceptable."""

    threshold: float
    """Threshold the caller configured (0 in baseline mode)."""

    mode: GatingMode
    """Which comparison was made."""

    pr_coverage_percentage: float
    """Weighted overall coverage of the changed files."""

    description: str
    """Human-readable verdict."""

    project_coverage_percentage: float | None = None
    """Project line coverage; always set in baseline mode."""

    error_message: str | None = None
    """Machine-oriented failure message, set only when ``passed`` is False."""

    @property
    def effective_threshold(self) -> float:
        """The number the PR coverage was compared against."""
        if self.mode is GatingMode.BASELINE and self.project_coverage_percentage is not None:
            return self.project_coverage_percentage
        return self.threshold


def project_line_coverage(summary: ReportSummary) -> float:
    """Return whole-project line coverage as a rounded integer percentage.

    A report with no lines at all counts as fully covered.
    """
    if summary.lines_found == 0:
        return FULL_COVERAGE
    return float(math.floor(summary.lines_hit / summary.lines_found * 100 + 0.5))


def evaluate_gating(
    result: CoverageAnalysisResult,
    summary: ReportSummary,
    threshold: float,
) -> GatingResult:
    """Decide whether the changeset's coverage passes the gate."""
    pr_coverage = result.overall_percentage
    project_coverage = project_line_coverage(summary)
    pr_text = format_percentage(pr_coverage)

    if threshold == BASELINE_THRESHOLD:
        mode = GatingMode.BASELINE
        passed = pr_coverage >= project_coverage
        baseline_text = format_percentage(project_coverage)
        if passed:
            description = (
                f"✅ PR coverage ({pr_text}%) meets or exceeds "
                f"overall project coverage ({baseline_text}%)"
            )
            error_message = None
        else:
            description = (
                f"❌ PR coverage ({pr_text}%) is below overall project coverage ({baseline_text}%)"
            )
            error_message = (
                f"Coverage gating failed: PR changes coverage ({pr_text}%) "
                f"is lower than overall project coverage ({baseline_text}%)"
            )
    else:
        mode = GatingMode.STANDARD
        passed = pr_coverage >= threshold
        threshold_text = format_percentage(threshold)
        if passed:
            description = f"✅ PR coverage ({pr_text}%) meets or exceeds threshold ({threshold_text}%)"
            error_message = None
        else:
            description = f"❌ PR coverage ({pr_text}%) is below threshold ({threshold_text}%)"
            error_message = (
                f"Coverage gating failed: PR changes coverage ({pr_text}%) "
                f"is below threshold ({threshold_text}%)"
            )

    logger.info("Gating (%s): %s", mode.value, "passed" if passed else "failed")
    return GatingResult(
        passed=passed,
        threshold=threshold,
        mode=mode,
        pr_coverage_percentage=pr_coverage,
        description=description,
        project_coverage_percentage=project_coverage,
        error_message=error_message,
    )


def format_gating_result(gating: GatingResult) -> str:
    """Format a gating result as a plain-text block."""
    mode_label = "Standard Threshold" if gating.mode is GatingMode.STANDARD else "Project Baseline"
    lines = [
        "🎯 Coverage Gating Results",
        "═══════════════════════════",
        "",
        f"📊 Mode: {mode_label}",
        f"📈 PR Coverage: {format_percentage(gating.pr_coverage_percentage)}%",
    ]
    if gating.mode is GatingMode.STANDARD:
        lines.append(f"🎯 Threshold: {format_percentage(gating.threshold)}%")
    else:
        lines.append(f"📊 Project Coverage: {format_percentage(gating.effective_threshold)}%")
        lines.append("🎯 Requirement: PR coverage ≥ Project coverage")

    lines.append("")
    lines.append(gating.description)
    return "\n".join(lines)
