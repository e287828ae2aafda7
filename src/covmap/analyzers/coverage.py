"""CoverageAnalyzer — joins a changeset with a parsed coverage report.

For every changed file the analyzer looks up its coverage record and derives
line, function, branch and overall percentages. The overall percentage is a
weighted figure over lines + functions + branches combined, never an average
of the three percentages. The changeset summary sums raw counts across files
before deriving percentages, so large files weigh more than small ones.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from covmap.adapters.coverage.base import (
        CoverageReport,
        FileCoverage,
        FunctionCoverage,
    )
    from covmap.models.changeset import Changeset, ChangeType

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────

FULL_COVERAGE = 100.0

# Display limits for the text summary
MAX_UNCOVERED_LINES_DISPLAY = 10


class CoverageUsageError(ValueError):
    """Raised when an analysis helper is called with inconsistent arguments."""


def round_half_up(value: float, digits: int = 2) -> float:
    """Round *value* half away from zero towards +inf, like ``Math.round``."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def percentage(hit: int, found: int) -> float:
    """Return ``hit/found`` as a rounded percentage, 100 when nothing was found."""
    if found <= 0:
        return FULL_COVERAGE
    return round_half_up(hit / found * 100)


def format_percentage(value: float) -> str:
    """Format a percentage without a trailing ``.0`` (``80`` not ``80.0``)."""
    return f"{value:g}"


# ── Data models ──────────────────────────────────────────────────


@dataclass
class CoverageMetrics:
    """Raw counts plus the percentages derived from them."""

    total_lines: int = 0
    covered_lines: int = 0
    total_functions: int = 0
    covered_functions: int = 0
    total_branches: int = 0
    covered_branches: int = 0
    lines_percentage: float = 0.0
    functions_percentage: float = 0.0
    branches_percentage: float = 0.0
    overall_percentage: float = 0.0

    @classmethod
    def from_counts(
        cls,
        *,
        total_lines: int,
        covered_lines: int,
        total_functions: int,
        covered_functions: int,
        total_branches: int,
        covered_branches: int,
    ) -> CoverageMetrics:
        """Derive percentages from counts; an empty dimension counts as 100%."""
        return cls(
            total_lines=total_lines,
            covered_lines=covered_lines,
            total_functions=total_functions,
            covered_functions=covered_functions,
            total_branches=total_branches,
            covered_branches=covered_branches,
            lines_percentage=percentage(covered_lines, total_lines),
            functions_percentage=percentage(covered_functions, total_functions),
            branches_percentage=percentage(covered_branches, total_branches),
            overall_percentage=percentage(
                covered_lines + covered_functions + covered_branches,
                total_lines + total_functions + total_branches,
            ),
        )

    @classmethod
    def from_file_coverage(cls, coverage: FileCoverage) -> CoverageMetrics:
        summary = coverage.summary
        return cls.from_counts(
            total_lines=summary.lines_found,
            covered_lines=summary.lines_hit,
            total_functions=summary.functions_found,
            covered_functions=summary.functions_hit,
            total_branches=summary.branches_found,
            covered_branches=summary.branches_hit,
        )

    @classmethod
    def no_data(cls) -> CoverageMetrics:
        """Metrics for a file absent from the report: everything zero, 0%."""
        return cls()


@dataclass
class ChangedFileCoverage:
    """A changed file together with its coverage record and metrics."""

    path: str
    """Path of the changed file."""

    change_type: ChangeType
    """How the file changed."""

    analysis: CoverageMetrics
    """Derived counts and percentages."""

    coverage: FileCoverage | None = None
    """Coverage record, or None when the report has no entry for the file."""

    @property
    def has_coverage(self) -> bool:
        return self.coverage is not None


@dataclass
class AnalysisSummary:
    """Changeset-wide totals."""

    total_changed_files: int = 0
    files_with_coverage: int = 0
    files_without_coverage: int = 0
    overall: CoverageMetrics = field(default_factory=CoverageMetrics)


@dataclass
class CoverageAnalysisResult:
    """Coverage analysis of a changeset."""

    changeset: Changeset
    changed_files: list[ChangedFileCoverage] = field(default_factory=list)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)

    @property
    def overall_percentage(self) -> float:
        """Weighted overall coverage of the changed files."""
        return self.summary.overall.overall_percentage


# ── CoverageAnalyzer ─────────────────────────────────────────────


class CoverageAnalyzer:
    """Analyze coverage of the files in a changeset."""

    def analyze(self, changeset: Changeset, report: CoverageReport) -> CoverageAnalysisResult:
        """Join *changeset* with *report* and compute per-file and total metrics."""
        changed_files: list[ChangedFileCoverage] = []
        for change in changeset.files:
            coverage = report.get(change.path)
            if coverage is not None:
                analysis = CoverageMetrics.from_file_coverage(coverage)
            else:
                logger.debug("No coverage data for changed file %s", change.path)
                analysis = CoverageMetrics.no_data()
            changed_files.append(
                ChangedFileCoverage(
                    path=change.path,
                    change_type=change.change_type,
                    analysis=analysis,
                    coverage=coverage,
                )
            )

        summary = self._summarize(changed_files)
        logger.info(
            "Analyzed %d changed files (%d with coverage): %.2f%% overall",
            summary.total_changed_files,
            summary.files_with_coverage,
            summary.overall.overall_percentage,
        )
        return CoverageAnalysisResult(
            changeset=changeset,
            changed_files=changed_files,
            summary=summary,
        )

    def _summarize(self, changed_files: list[ChangedFileCoverage]) -> AnalysisSummary:
        with_coverage = sum(1 for f in changed_files if f.has_coverage)
        overall = CoverageMetrics.from_counts(
            total_lines=sum(f.analysis.total_lines for f in changed_files),
            covered_lines=sum(f.analysis.covered_lines for f in changed_files),
            total_functions=sum(f.analysis.total_functions for f in changed_files),
            covered_functions=sum(f.analysis.covered_functions for f in changed_files),
            total_branches=sum(f.analysis.total_branches for f in changed_files),
            covered_branches=sum(f.analysis.covered_branches for f in changed_files),
        )
        return AnalysisSummary(
            total_changed_files=len(changed_files),
            files_with_coverage=with_coverage,
            files_without_coverage=len(changed_files) - with_coverage,
            overall=overall,
        )


def analyze_coverage(changeset: Changeset, report: CoverageReport) -> CoverageAnalysisResult:
    """Analyze *changeset* against *report* with a default analyzer."""
    return CoverageAnalyzer().analyze(changeset, report)


# ── Queries over a result ────────────────────────────────────────


def uncovered_functions(
    result: CoverageAnalysisResult,
) -> list[tuple[str, list[FunctionCoverage]]]:
    """Return ``(path, functions)`` for files with zero-hit functions."""
    pairs: list[tuple[str, list[FunctionCoverage]]] = []
    for file in result.changed_files:
        if file.coverage is None:
            continue
        missed = [func for func in file.coverage.functions if func.execution_count == 0]
        if missed:
            pairs.append((file.path, missed))
    return pairs


def uncovered_lines(result: CoverageAnalysisResult) -> list[tuple[str, list[int]]]:
    """Return ``(path, line_numbers)`` for files with zero-hit lines."""
    pairs: list[tuple[str, list[int]]] = []
    for file in result.changed_files:
        if file.coverage is None:
            continue
        missed = [line.line_number for line in file.coverage.lines if line.execution_count == 0]
        if missed:
            pairs.append((file.path, missed))
    return pairs


def meets_coverage_threshold(
    result: CoverageAnalysisResult,
    threshold: float,
    *,
    baseline: float | None = None,
) -> bool:
    """Compare the overall changeset coverage against a threshold.

    A threshold of exactly 0 means "compare against the project baseline";
    the caller must then supply *baseline*.

    Raises:
        CoverageUsageError: If threshold is 0 and no baseline is given.
    """
    if threshold == 0:
        if baseline is None:
            raise CoverageUsageError(
                "A baseline coverage percentage is required when the threshold is 0"
            )
        return result.overall_percentage >= baseline
    return result.overall_percentage >= threshold


# ── Text formatting ──────────────────────────────────────────────


def format_analysis(result: CoverageAnalysisResult) -> str:
    """Format the analysis as a plain-text report."""
    summary = result.summary
    overall = summary.overall

    lines = [
        "📊 Coverage Analysis for Changed Files",
        "═══════════════════════════════════════",
        "",
        f"📁 Files analyzed: {summary.total_changed_files}",
        f"✅ Files with coverage: {summary.files_with_coverage}",
        f"❌ Files without coverage: {summary.files_without_coverage}",
        "",
        "📈 Overall Coverage:",
        f"  Lines: {overall.covered_lines}/{overall.total_lines} "
        f"({format_percentage(overall.lines_percentage)}%)",
        f"  Functions: {overall.covered_functions}/{overall.total_functions} "
        f"({format_percentage(overall.functions_percentage)}%)",
        f"  Branches: {overall.covered_branches}/{overall.total_branches} "
        f"({format_percentage(overall.branches_percentage)}%)",
        f"  Overall: {format_percentage(overall.overall_percentage)}%",
        "",
    ]

    if result.changed_files:
        lines.append("📂 File Details:")
        for file in result.changed_files:
            status = "✅" if file.has_coverage else "❌"
            lines.append(
                f"  {status} {file.path} ({format_percentage(file.analysis.overall_percentage)}%)"
            )
            if file.coverage is None or file.analysis.overall_percentage >= FULL_COVERAGE:
                continue
            lines.extend(_format_file_gaps(file.coverage))

    return "\n".join(lines)


def _format_file_gaps(coverage: FileCoverage) -> list[str]:
    lines: list[str] = []
    missed_functions = [func.name for func in coverage.functions if func.execution_count == 0]
    if missed_functions:
        lines.append(f"    🔸 Uncovered functions: {', '.join(missed_functions)}")

    missed_lines = [str(line.line_number) for line in coverage.lines if line.execution_count == 0]
    if missed_lines:
        shown = missed_lines[:MAX_UNCOVERED_LINES_DISPLAY]
        more = len(missed_lines) - len(shown)
        listing = ", ".join(shown)
        if more > 0:
            listing = f"{listing} (+{more} more)"
        lines.append(f"    🔸 Uncovered lines: {listing}")
    return lines
