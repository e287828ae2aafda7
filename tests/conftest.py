"""Shared fixtures for covmap tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from covmap.adapters.coverage import CoverageReport, parse_lcov
from covmap.analyzers.coverage import CoverageAnalysisResult, CoverageAnalyzer
from covmap.models.changeset import create_changeset

# Two source files: one partly covered, one fully covered.
SAMPLE_LCOV = """TN:
SF:src/math.ts
FN:1,add
FN:5,multiply
FNDA:2,add
FNDA:0,multiply
DA:1,2
DA:2,2
DA:3,0
DA:5,0
DA:6,0
BRDA:2,0,0,1
BRDA:2,0,1,0
end_of_record
TN:
SF:src/utils.ts
FN:1,helper
FNDA:5,helper
DA:1,5
DA:2,5
DA:3,5
end_of_record
TN:
SF:src/untouched.ts
DA:1,1
DA:2,1
DA:3,1
DA:4,0
end_of_record
"""


@pytest.fixture
def sample_report() -> CoverageReport:
    return parse_lcov(SAMPLE_LCOV)


@pytest.fixture
def sample_result(sample_report: CoverageReport) -> CoverageAnalysisResult:
    """Analysis of math.ts, utils.ts and a file missing from the report."""
    changeset = create_changeset(
        ["src/math.ts", "src/utils.ts", "src/missing.ts"],
        base_commit="abc123",
    )
    return CoverageAnalyzer().analyze(changeset, sample_report)


@pytest.fixture
def lcov_project(tmp_path: Path) -> Path:
    """A project root with the sample report at ``coverage/lcov.info``."""
    report = tmp_path / "coverage" / "lcov.info"
    report.parent.mkdir()
    report.write_text(SAMPLE_LCOV, encoding="utf-8")
    return tmp_path
