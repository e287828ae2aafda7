"""Coverage adapters for unified coverage reporting."""

from covmap.adapters.coverage.base import (
    BranchCoverage,
    CoverageAdapter,
    CoverageReport,
    FileCoverage,
    FileSummary,
    FunctionCoverage,
    LineCoverage,
    ReportSummary,
)
from covmap.adapters.coverage.lcov import (
    CoverageFileNotFoundError,
    LcovAdapter,
    parse_lcov,
    parse_lcov_file,
)

__all__ = [
    "BranchCoverage",
    "CoverageAdapter",
    "CoverageFileNotFoundError",
    "CoverageReport",
    "FileCoverage",
    "FileSummary",
    "FunctionCoverage",
    "LcovAdapter",
    "LineCoverage",
    "ReportSummary",
    "parse_lcov",
    "parse_lcov_file",
]
