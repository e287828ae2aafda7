"""Annotation reporter — marks uncovered code in the pull request diff.

Consecutive uncovered lines collapse into a single annotation, so a file
with long uncovered blocks costs a handful of annotations rather than one
per line. GitHub shows at most 50 annotations per step; lower-severity
annotations are dropped first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from covmap.analyzers.coverage import format_percentage
from covmap.analyzers.regions import group_consecutive_lines

if TYPE_CHECKING:
    from covmap.analyzers.coverage import ChangedFileCoverage, CoverageAnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ANNOTATIONS = 50
DEFAULT_LOW_COVERAGE_THRESHOLD = 80.0

_NO_COVERAGE_MESSAGE = (
    "This file has no coverage data. Consider adding tests or ensuring the file "
    "is included in coverage instrumentation."
)


class AnnotationLevel(Enum):
    """Annotation severity, ordered most to least severe."""

    FAILURE = "failure"
    WARNING = "warning"
    NOTICE = "notice"

    @property
    def priority(self) -> int:
        return _LEVEL_PRIORITY[self]

    @property
    def workflow_command(self) -> str:
        """Workflow command keyword (``failure`` maps to ``error``)."""
        return "error" if self is AnnotationLevel.FAILURE else self.value


_LEVEL_PRIORITY = {
    AnnotationLevel.FAILURE: 0,
    AnnotationLevel.WARNING: 1,
    AnnotationLevel.NOTICE: 2,
}


@dataclass
class CheckAnnotation:
    """One annotation on a span of lines in a file."""

    path: str
    start_line: int
    end_line: int
    level: AnnotationLevel
    message: str
    title: str | None = None
    raw_details: str | None = None


def generate_annotations(
    result: CoverageAnalysisResult,
    *,
    low_coverage_threshold: float = DEFAULT_LOW_COVERAGE_THRESHOLD,
    max_annotations: int = DEFAULT_MAX_ANNOTATIONS,
) -> list[CheckAnnotation]:
    """Build annotations for uncovered lines, functions and low-coverage files."""
    annotations: list[CheckAnnotation] = []

    for file in result.changed_files:
        if file.coverage is None:
            annotations.append(
                CheckAnnotation(
                    path=file.path,
                    start_line=1,
                    end_line=1,
                    level=AnnotationLevel.WARNING,
                    title="No Coverage Data",
                    message=_NO_COVERAGE_MESSAGE,
                )
            )
            continue

        annotations.extend(_uncovered_line_annotations(file))
        annotations.extend(_uncovered_function_annotations(file))

        overall = file.analysis.overall_percentage
        if overall < low_coverage_threshold:
            annotations.append(
                CheckAnnotation(
                    path=file.path,
                    start_line=1,
                    end_line=1,
                    level=AnnotationLevel.NOTICE,
                    title="Low Coverage",
                    message=(
                        f"File coverage is {format_percentage(overall)}%. "
                        "Consider adding more tests to improve coverage."
                    ),
                    raw_details=format_file_coverage_summary(file),
                )
            )

    return prioritize_annotations(annotations, max_annotations)


def _uncovered_line_annotations(file: ChangedFileCoverage) -> list[CheckAnnotation]:
    if file.coverage is None:
        return []

    missed = [line.line_number for line in file.coverage.lines if line.execution_count == 0]
    annotations: list[CheckAnnotation] = []
    for group in group_consecutive_lines(missed):
        start, end = group[0], group[-1]
        message = (
            f"Line {start} is not covered by tests"
            if len(group) == 1
            else f"Lines {start}-{end} are not covered by tests"
        )
        annotations.append(
            CheckAnnotation(
                path=file.path,
                start_line=start,
                end_line=end,
                level=AnnotationLevel.WARNING,
                title="Uncovered Lines",
                message=message,
            )
        )
    return annotations


def _uncovered_function_annotations(file: ChangedFileCoverage) -> list[CheckAnnotation]:
    if file.coverage is None:
        return []
    return [
        CheckAnnotation(
            path=file.path,
            start_line=func.line_number,
            end_line=func.line_number,
            level=AnnotationLevel.WARNING,
            title="Uncovered Function",
            message=f"Function '{func.name}' is not covered by tests",
        )
        for func in file.coverage.functions
        if func.execution_count == 0
    ]


def format_file_coverage_summary(file: ChangedFileCoverage) -> str:
    """Return the per-file breakdown attached to low-coverage notices."""
    analysis = file.analysis
    return "\n".join(
        [
            f"Coverage Summary for {file.path}:",
            f"• Lines: {analysis.covered_lines}/{analysis.total_lines} "
            f"({format_percentage(analysis.lines_percentage)}%)",
            f"• Functions: {analysis.covered_functions}/{analysis.total_functions} "
            f"({format_percentage(analysis.functions_percentage)}%)",
            f"• Branches: {analysis.covered_branches}/{analysis.total_branches} "
            f"({format_percentage(analysis.branches_percentage)}%)",
            f"• Overall: {format_percentage(analysis.overall_percentage)}%",
        ]
    )


def prioritize_annotations(
    annotations: list[CheckAnnotation],
    max_annotations: int = DEFAULT_MAX_ANNOTATIONS,
) -> list[CheckAnnotation]:
    """Sort by severity (stable) and keep the first *max_annotations*."""
    ordered = sorted(annotations, key=lambda a: a.level.priority)
    if len(ordered) <= max_annotations:
        return ordered

    logger.warning(
        "Generated %d annotations, but only %d can be shown. "
        "Keeping the highest priority annotations.",
        len(ordered),
        max_annotations,
    )
    return ordered[:max_annotations]


# ── Workflow commands ────────────────────────────────────────────


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(value: str) -> str:
    return _escape_data(value).replace(":", "%3A").replace(",", "%2C")


def format_workflow_command(annotation: CheckAnnotation) -> str:
    """Render an annotation as a GitHub Actions workflow command.

    >>> format_workflow_command(CheckAnnotation(
    ...     "src/a.ts", 2, 4, AnnotationLevel.WARNING, "Lines 2-4 are not covered by tests",
    ...     title="Uncovered Lines"))
    '::warning file=src/a.ts,line=2,endLine=4,title=Uncovered Lines::Lines 2-4 are not covered by tests'
    """
    properties = [
        f"file={_escape_property(annotation.path)}",
        f"line={annotation.start_line}",
        f"endLine={annotation.end_line}",
    ]
    if annotation.title:
        properties.append(f"title={_escape_property(annotation.title)}")

    message = annotation.message
    if annotation.raw_details:
        message = f"{message}\n\n{annotation.raw_details}"

    return f"::{annotation.level.workflow_command} {','.join(properties)}::{_escape_data(message)}"
