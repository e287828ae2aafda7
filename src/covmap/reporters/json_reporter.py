"""JSON reporter — machine-readable export of a coverage run.

Writes the changeset analysis, the gating decision and the treemap dataset
into one document for downstream tooling (dashboards, image renderers).
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from covmap import __version__
from covmap.analyzers.treemap import generate_treemap_data

if TYPE_CHECKING:
    from pathlib import Path

    from covmap.analyzers.coverage import (
        ChangedFileCoverage,
        CoverageAnalysisResult,
        CoverageMetrics,
    )
    from covmap.analyzers.gating import GatingResult
    from covmap.analyzers.treemap import TreemapData

logger = logging.getLogger(__name__)


class JSONReporter:
    """Serialize coverage results to JSON."""

    def generate(
        self,
        output_path: Path,
        result: CoverageAnalysisResult,
        *,
        gating: GatingResult | None = None,
        include_treemap: bool = True,
    ) -> Path:
        """Write a JSON report file and return its path."""
        report = _build_report(result, gating=gating, include_treemap=include_treemap)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(report, indent=2, ensure_ascii=False, default=str),
            encoding="utf-8",
        )
        logger.info("JSON report written to %s", output_path)
        return output_path

    def generate_string(
        self,
        result: CoverageAnalysisResult,
        *,
        gating: GatingResult | None = None,
        include_treemap: bool = True,
    ) -> str:
        """Return the JSON report as a string."""
        report = _build_report(result, gating=gating, include_treemap=include_treemap)
        return json.dumps(report, indent=2, ensure_ascii=False, default=str)


def write_treemap_data(output_path: Path, treemap: TreemapData) -> Path:
    """Write only the treemap dataset, for an external renderer."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(treemap.to_dict(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.info("Treemap dataset written to %s", output_path)
    return output_path


def _build_report(
    result: CoverageAnalysisResult,
    *,
    gating: GatingResult | None = None,
    include_treemap: bool = True,
) -> dict[str, Any]:
    """Build the JSON report structure."""
    changeset = result.changeset
    summary = result.summary
    report: dict[str, Any] = {
        "tool": "covmap",
        "version": __version__,
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "changeset": {
            "base_commit": changeset.base_commit,
            "head_commit": changeset.head_commit,
            "target_branch": changeset.target_branch,
            "total_files": changeset.total_files,
        },
        "summary": {
            "total_changed_files": summary.total_changed_files,
            "files_with_coverage": summary.files_with_coverage,
            "files_without_coverage": summary.files_without_coverage,
            "coverage": _serialize_metrics(summary.overall),
        },
        "files": [_serialize_file(file) for file in result.changed_files],
    }

    if gating is not None:
        report["gating"] = {
            "passed": gating.passed,
            "mode": gating.mode.value,
            "threshold": gating.threshold,
            "pr_coverage_percentage": gating.pr_coverage_percentage,
            "project_coverage_percentage": gating.project_coverage_percentage,
            "description": gating.description,
            "error_message": gating.error_message,
        }

    if include_treemap:
        report["treemap"] = generate_treemap_data(result).to_dict()

    return report


def _serialize_metrics(metrics: CoverageMetrics) -> dict[str, Any]:
    return {
        "lines": {
            "covered": metrics.covered_lines,
            "total": metrics.total_lines,
            "percentage": metrics.lines_percentage,
        },
        "functions": {
            "covered": metrics.covered_functions,
            "total": metrics.total_functions,
            "percentage": metrics.functions_percentage,
        },
        "branches": {
            "covered": metrics.covered_branches,
            "total": metrics.total_branches,
            "percentage": metrics.branches_percentage,
        },
        "overall_percentage": metrics.overall_percentage,
    }


def _serialize_file(file: ChangedFileCoverage) -> dict[str, Any]:
    return {
        "path": file.path,
        "change_type": file.change_type.value,
        "has_coverage": file.has_coverage,
        "coverage": _serialize_metrics(file.analysis),
    }
