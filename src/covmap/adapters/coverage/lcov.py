"""LCOV tracefile adapter.

Parses the line-oriented ``.info`` format written by lcov/geninfo, c8, nyc,
jest, cargo-llvm-cov and friends into the unified CoverageReport::

    SF:<source file>
    FN:<line>,<function name>
    FNDA:<hit count>,<function name>
    DA:<line>,<hit count>
    BRDA:<line>,<block>,<branch>,<taken>
    end_of_record

Everything else (``TN``, ``LF``, ``LH``, ``FNF``, ...) is ignored; the
found/hit totals are always recomputed from the records themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from covmap.adapters.coverage.base import (
    BranchCoverage,
    CoverageAdapter,
    CoverageReport,
    FileCoverage,
    FunctionCoverage,
    LineCoverage,
)

logger = logging.getLogger(__name__)


class CoverageFileNotFoundError(FileNotFoundError):
    """Raised when the coverage report path does not exist."""


# ── Constants ────────────────────────────────────────────────────

_LCOV_SF = "SF:"
_LCOV_FN = "FN:"
_LCOV_FNDA = "FNDA:"
_LCOV_DA = "DA:"
_LCOV_BRDA = "BRDA:"
_LCOV_END = "end_of_record"
_LCOV_BRDA_PARTS = 4
_LCOV_DA_PARTS = 2
_LCOV_NO_BRANCH_DATA = "-"

_REPORT_CANDIDATES = ["coverage/lcov.info", "lcov.info", "coverage.info", "coverage/lcov.lcov"]


# ── Parser state ─────────────────────────────────────────────────


@dataclass
class _Idle:
    """No ``SF`` record is open; data records are dropped."""


@dataclass
class _Accumulating:
    """An ``SF`` record is open and collecting data records."""

    path: str
    functions: list[FunctionCoverage] = field(default_factory=list)
    lines: list[LineCoverage] = field(default_factory=list)
    branches: list[BranchCoverage] = field(default_factory=list)
    by_name: dict[str, FunctionCoverage] = field(default_factory=dict)

    def to_file_coverage(self) -> FileCoverage:
        return FileCoverage(
            file_path=self.path,
            functions=self.functions,
            lines=self.lines,
            branches=self.branches,
        )


_ParserState = _Idle | _Accumulating


# ── Adapter ──────────────────────────────────────────────────────


class LcovAdapter(CoverageAdapter):
    """LCOV tracefile adapter.

    Tolerant by design: blank lines, unknown prefixes and records with
    non-numeric fields are skipped, and a missing trailing
    ``end_of_record`` still flushes the last file.
    """

    @property
    def name(self) -> str:
        return "lcov"

    def detect(self, project_path: Path) -> bool:
        """Return True if an LCOV report exists in a conventional location."""
        return self.find_report(project_path) is not None

    def find_report(self, project_path: Path) -> Path | None:
        """Return the first conventional LCOV report path under project_path."""
        for candidate in _REPORT_CANDIDATES:
            path = project_path / candidate
            if path.is_file():
                return path
        return None

    def parse_coverage_file(self, coverage_file: Path | str) -> CoverageReport:
        """Read and parse an LCOV file.

        Raises:
            CoverageFileNotFoundError: If the path does not exist.
        """
        absolute = Path(coverage_file).resolve()
        if not absolute.exists():
            raise CoverageFileNotFoundError(f"LCOV file not found: {absolute}")

        logger.debug("Reading LCOV file %s", absolute)
        return self.parse_string(absolute.read_text(encoding="utf-8"))

    def parse_string(self, content: str) -> CoverageReport:
        """Parse LCOV text into a CoverageReport."""
        files: dict[str, FileCoverage] = {}
        state: _ParserState = _Idle()

        for raw_line in content.split("\n"):
            line = raw_line.strip()
            if not line:
                continue
            if line.startswith(_LCOV_SF):
                self._flush(files, state)
                state = _Accumulating(path=line[len(_LCOV_SF) :])
            elif line == _LCOV_END:
                self._flush(files, state)
                state = _Idle()
            elif isinstance(state, _Accumulating):
                self._apply_record(state, line)
            else:
                logger.debug("Ignoring record outside of a source file: %s", line)

        # Tolerate a missing trailing end_of_record
        self._flush(files, state)

        report = CoverageReport(files=files)
        logger.info("Parsed %d files from LCOV report", len(files))
        return report

    def _flush(self, files: dict[str, FileCoverage], state: _ParserState) -> None:
        if not isinstance(state, _Accumulating) or not state.path:
            return
        if state.path in files:
            logger.debug("Duplicate record for %s; later record wins", state.path)
        files[state.path] = state.to_file_coverage()

    def _apply_record(self, state: _Accumulating, line: str) -> None:
        try:
            if line.startswith(_LCOV_FNDA):
                self._apply_fnda(state, line[len(_LCOV_FNDA) :])
            elif line.startswith(_LCOV_FN):
                self._apply_fn(state, line[len(_LCOV_FN) :])
            elif line.startswith(_LCOV_DA):
                self._apply_da(state, line[len(_LCOV_DA) :])
            elif line.startswith(_LCOV_BRDA):
                self._apply_brda(state, line[len(_LCOV_BRDA) :])
        except ValueError:
            logger.debug("Skipping malformed LCOV record: %s", line)

    def _apply_fn(self, state: _Accumulating, value: str) -> None:
        # The name may itself contain commas; only the first field is numeric.
        parts = value.split(",", 1)
        if len(parts) < _LCOV_DA_PARTS:
            return
        func = FunctionCoverage(name=parts[1], line_number=int(parts[0]), execution_count=0)
        state.functions.append(func)
        state.by_name.setdefault(func.name, func)

    def _apply_fnda(self, state: _Accumulating, value: str) -> None:
        parts = value.split(",", 1)
        if len(parts) < _LCOV_DA_PARTS:
            return
        hit = int(parts[0])
        func = state.by_name.get(parts[1])
        if func is None:
            logger.debug("Dropping FNDA for undeclared function %r in %s", parts[1], state.path)
            return
        func.execution_count = hit

    def _apply_da(self, state: _Accumulating, value: str) -> None:
        parts = value.split(",")
        if len(parts) < _LCOV_DA_PARTS:
            return
        state.lines.append(LineCoverage(line_number=int(parts[0]), execution_count=int(parts[1])))

    def _apply_brda(self, state: _Accumulating, value: str) -> None:
        parts = value.split(",")
        if len(parts) < _LCOV_BRDA_PARTS:
            return
        taken_raw = parts[3]
        taken = 0 if taken_raw == _LCOV_NO_BRANCH_DATA else int(taken_raw)
        state.branches.append(
            BranchCoverage(
                line_number=int(parts[0]),
                block=int(parts[1]),
                branch=int(parts[2]),
                taken_count=taken,
            )
        )


def parse_lcov(content: str) -> CoverageReport:
    """Parse LCOV text with a default adapter."""
    return LcovAdapter().parse_string(content)


def parse_lcov_file(path: Path | str) -> CoverageReport:
    """Parse an LCOV file with a default adapter.

    Raises:
        CoverageFileNotFoundError: If the path does not exist.
    """
    return LcovAdapter().parse_coverage_file(path)
