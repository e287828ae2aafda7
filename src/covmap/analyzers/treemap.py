"""Treemap dataset derivation.

Turns a coverage analysis into a flat list of sized, coverage-classified
nodes under a single root label. Layout and rasterization are left to the
consumer; this module only decides what each rectangle represents, how big
it is and which colour class it falls into.

LCOV does not record where a function ends, so function extents are
inferred from the declaration lines of neighbouring functions. The last
function in a file runs to the highest recorded line; when the file has no
line records at all it gets a fixed 10-line extent. That fallback is a
heuristic, not a measured size.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import TYPE_CHECKING, Any

from covmap.analyzers.coverage import FULL_COVERAGE

if TYPE_CHECKING:
    from covmap.adapters.coverage.base import FileCoverage, FunctionCoverage
    from covmap.analyzers.coverage import ChangedFileCoverage, CoverageAnalysisResult

logger = logging.getLogger(__name__)

ROOT_NAME = "Coverage Analysis"

# Extent given to the last function of a file that has no line records
FALLBACK_FUNCTION_EXTENT = 10

_MIN_NODE_SIZE = 1


class CoverageClass(Enum):
    """Colour class of a treemap node."""

    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


@dataclass
class TreemapNode:
    """One rectangle's worth of treemap input."""

    name: str
    """Display label (``file.ts`` or ``file.ts::function``)."""

    file: str
    """Path of the owning file."""

    value: int
    """Layout size; always at least 1."""

    coverage: CoverageClass
    """Coverage classification."""

    line_count: int
    """Lines attributed to the node."""

    covered_lines: int
    """Covered lines attributed to the node."""

    function_name: str | None = None
    """Function represented by the node, None for whole-file nodes."""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["coverage"] = self.coverage.value
        if self.function_name is None:
            data.pop("function_name")
        return data


@dataclass
class TreemapData:
    """Root label plus its leaf nodes."""

    name: str = ROOT_NAME
    children: list[TreemapNode] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "children": [child.to_dict() for child in self.children]}


def generate_treemap_data(result: CoverageAnalysisResult) -> TreemapData:
    """Derive treemap nodes for every changed file, in changeset order."""
    children: list[TreemapNode] = []
    for file in result.changed_files:
        if file.coverage is None:
            children.append(_uncovered_file_node(file))
        elif file.coverage.functions:
            children.extend(_function_nodes(file.path, file.coverage))
        else:
            children.append(_file_node(file))

    logger.debug("Generated %d treemap nodes", len(children))
    return TreemapData(name=ROOT_NAME, children=children)


def _uncovered_file_node(file: ChangedFileCoverage) -> TreemapNode:
    total = file.analysis.total_lines
    return TreemapNode(
        name=PurePath(file.path).name,
        file=file.path,
        value=max(total, _MIN_NODE_SIZE),
        coverage=CoverageClass.NONE,
        line_count=total,
        covered_lines=0,
    )


def _file_node(file: ChangedFileCoverage) -> TreemapNode:
    ratio = file.analysis.lines_percentage / FULL_COVERAGE
    if ratio == 0:
        coverage = CoverageClass.NONE
    elif ratio == 1:
        coverage = CoverageClass.FULL
    else:
        coverage = CoverageClass.PARTIAL

    total = file.analysis.total_lines
    return TreemapNode(
        name=PurePath(file.path).name,
        file=file.path,
        value=max(total, _MIN_NODE_SIZE),
        coverage=coverage,
        line_count=total,
        covered_lines=file.analysis.covered_lines,
    )


def _function_nodes(path: str, coverage: FileCoverage) -> list[TreemapNode]:
    basename = PurePath(path).name
    hits = _hit_line_numbers(coverage)
    nodes: list[TreemapNode] = []
    for func, extent in zip(coverage.functions, function_extents(coverage), strict=True):
        start = func.line_number
        covered = _count_in_range(hits, start, start + extent)
        nodes.append(
            TreemapNode(
                name=f"{basename}::{func.name}",
                file=path,
                value=max(extent, _MIN_NODE_SIZE),
                coverage=classify(covered, extent),
                line_count=extent,
                covered_lines=covered,
                function_name=func.name,
            )
        )
    return nodes


def classify(covered: int, total: int) -> CoverageClass:
    """Classify a node by covered vs. attributed lines."""
    if covered == 0:
        return CoverageClass.NONE
    if covered == total:
        return CoverageClass.FULL
    return CoverageClass.PARTIAL


def function_extents(coverage: FileCoverage) -> list[int]:
    """Infer the extent of every function in *coverage*.

    A function runs from its declaration up to the next declared function.
    The last function runs through the highest recorded line of the file,
    or :data:`FALLBACK_FUNCTION_EXTENT` lines when no lines are recorded.
    Extents are never below 1.

    Returns:
        One extent per entry of ``coverage.functions``, in the same order.
    """
    functions = coverage.functions
    ordered = sorted(range(len(functions)), key=lambda i: functions[i].line_number)
    max_line = coverage.max_line_number

    # Repeated (name, line) declarations share the extent of the first one
    by_key: dict[tuple[str, int], int] = {}
    for position, index in enumerate(ordered):
        start = functions[index].line_number
        if position + 1 < len(ordered):
            extent = functions[ordered[position + 1]].line_number - start
        elif max_line is None:
            extent = FALLBACK_FUNCTION_EXTENT
        else:
            extent = max_line - start + 1
        by_key.setdefault((functions[index].name, start), max(extent, 1))

    return [by_key[(func.name, func.line_number)] for func in functions]


def function_line_count(func: FunctionCoverage, coverage: FileCoverage) -> int:
    """Infer how many lines *func* spans (see :func:`function_extents`)."""
    for candidate, extent in zip(coverage.functions, function_extents(coverage), strict=True):
        if candidate.name == func.name and candidate.line_number == func.line_number:
            return extent
    return FALLBACK_FUNCTION_EXTENT


def function_covered_lines(func: FunctionCoverage, coverage: FileCoverage) -> int:
    """Count hit lines inside ``[start, start + extent)`` of *func*."""
    start = func.line_number
    end = start + function_line_count(func, coverage)
    return _count_in_range(_hit_line_numbers(coverage), start, end)


def _hit_line_numbers(coverage: FileCoverage) -> list[int]:
    return sorted(line.line_number for line in coverage.lines if line.is_covered)


def _count_in_range(sorted_lines: list[int], start: int, end: int) -> int:
    return bisect_left(sorted_lines, end) - bisect_left(sorted_lines, start)
