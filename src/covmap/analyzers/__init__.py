"""Analyzers over parsed coverage data: aggregation, treemap, gating."""

from covmap.analyzers.coverage import (
    AnalysisSummary,
    ChangedFileCoverage,
    CoverageAnalysisResult,
    CoverageAnalyzer,
    CoverageMetrics,
    CoverageUsageError,
    analyze_coverage,
    format_analysis,
    meets_coverage_threshold,
    uncovered_functions,
    uncovered_lines,
)
from covmap.analyzers.gating import (
    GatingMode,
    GatingResult,
    evaluate_gating,
    format_gating_result,
    project_line_coverage,
)
from covmap.analyzers.regions import group_consecutive_lines
from covmap.analyzers.treemap import (
    CoverageClass,
    TreemapData,
    TreemapNode,
    function_covered_lines,
    function_extents,
    function_line_count,
    generate_treemap_data,
)

__all__ = [
    "AnalysisSummary",
    "ChangedFileCoverage",
    "CoverageAnalysisResult",
    "CoverageAnalyzer",
    "CoverageClass",
    "CoverageMetrics",
    "CoverageUsageError",
    "GatingMode",
    "GatingResult",
    "TreemapData",
    "TreemapNode",
    "analyze_coverage",
    "evaluate_gating",
    "format_analysis",
    "format_gating_result",
    "function_covered_lines",
    "function_extents",
    "function_line_count",
    "generate_treemap_data",
    "group_consecutive_lines",
    "meets_coverage_threshold",
    "project_line_coverage",
    "uncovered_functions",
    "uncovered_lines",
]
