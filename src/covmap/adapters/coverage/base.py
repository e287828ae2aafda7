"""Base classes and data models for coverage adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


@dataclass
class FunctionCoverage:
    """Coverage data for a single function."""

    name: str
    line_number: int
    execution_count: int = 0

    @property
    def is_covered(self) -> bool:
        """Return True if this function was executed at least once."""
        return self.execution_count > 0


@dataclass
class LineCoverage:
    """Coverage data for a single line of code."""

    line_number: int
    execution_count: int

    @property
    def is_covered(self) -> bool:
        """Return True if this line was executed at least once."""
        return self.execution_count > 0


@dataclass
class BranchCoverage:
    """Coverage data for a single branch outcome (one ``BRDA`` record)."""

    line_number: int
    block: int
    branch: int
    taken_count: int

    @property
    def is_covered(self) -> bool:
        """Return True if this branch was taken at least once."""
        return self.taken_count > 0


@dataclass
class FileSummary:
    """Found/hit counts for one file (or a sum of files)."""

    functions_found: int = 0
    functions_hit: int = 0
    lines_found: int = 0
    lines_hit: int = 0
    branches_found: int = 0
    branches_hit: int = 0


@dataclass
class ReportSummary(FileSummary):
    """Field-wise sum of every file summary in a report."""

    total_files: int = 0


@dataclass
class FileCoverage:
    """Coverage data for a single source file."""

    file_path: str
    functions: list[FunctionCoverage] = field(default_factory=list)
    lines: list[LineCoverage] = field(default_factory=list)
    branches: list[BranchCoverage] = field(default_factory=list)

    @property
    def summary(self) -> FileSummary:
        """Return found/hit counts derived from the record lists."""
        return FileSummary(
            functions_found=len(self.functions),
            functions_hit=sum(1 for func in self.functions if func.is_covered),
            lines_found=len(self.lines),
            lines_hit=sum(1 for line in self.lines if line.is_covered),
            branches_found=len(self.branches),
            branches_hit=sum(1 for branch in self.branches if branch.is_covered),
        )

    @property
    def max_line_number(self) -> int | None:
        """Return the highest line number with a ``DA`` record, if any."""
        if not self.lines:
            return None
        return max(line.line_number for line in self.lines)


@dataclass
class CoverageReport:
    """Parsed coverage report keyed by source file path."""

    files: dict[str, FileCoverage] = field(default_factory=dict)

    @property
    def summary(self) -> ReportSummary:
        """Return the field-wise sum of all file summaries."""
        total = ReportSummary(total_files=len(self.files))
        for file_cov in self.files.values():
            file_summary = file_cov.summary
            total.functions_found += file_summary.functions_found
            total.functions_hit += file_summary.functions_hit
            total.lines_found += file_summary.lines_found
            total.lines_hit += file_summary.lines_hit
            total.branches_found += file_summary.branches_found
            total.branches_hit += file_summary.branches_hit
        return total

    def get(self, path: str) -> FileCoverage | None:
        """Return coverage for *path*, or None when the report has no entry."""
        return self.files.get(path)


class CoverageAdapter(ABC):
    """Abstract base class for coverage report adapters.

    Each concrete adapter knows how to read one report format into the
    unified CoverageReport.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Report format identifier (e.g. 'lcov')."""

    @abstractmethod
    def detect(self, project_path: Path) -> bool:
        """Return True if a report in this format exists under project_path."""

    @abstractmethod
    def parse_string(self, content: str) -> CoverageReport:
        """Parse report text into unified format."""

    @abstractmethod
    def parse_coverage_file(self, coverage_file: Path) -> CoverageReport:
        """Parse a coverage report file into unified format.

        Args:
            coverage_file: Path to the native coverage report file.

        Returns:
            A CoverageReport with parsed coverage data.
        """
