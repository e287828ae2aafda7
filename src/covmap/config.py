"""Configuration parsing from ``.covmap.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from covmap.models.changeset import DEFAULT_EXTENSIONS, split_patterns

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".covmap.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")
_TRUTHY = {True, "true", "1", "yes"}
_MAX_PERCENTAGE = 100.0


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


def _as_bool(value: Any) -> bool:
    return value in _TRUTHY


@dataclass
class CoverageConfig:
    """Coverage input and gating configuration."""

    lcov_file: str = "coverage/lcov.info"
    """Path of the LCOV report, relative to the project root."""

    threshold: float = 80.0
    """Minimum PR coverage percentage; 0 compares against the project baseline."""

    low_coverage_threshold: float = 80.0
    """Per-file coverage below which a "Low Coverage" notice is emitted."""


@dataclass
class ChangesetConfig:
    """Which changed files are analyzed."""

    target_branch: str = "main"
    """Branch the pull request merges into."""

    source_patterns: list[str] = field(default_factory=list)
    """Globs selecting source files (defaults apply when empty)."""

    test_patterns: list[str] = field(default_factory=list)
    """Globs excluding test files (defaults apply when empty)."""

    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    """File extensions considered code."""


@dataclass
class ReportConfig:
    """Reporting and output configuration."""

    label: str = ""
    """Label distinguishing several coverage comments on one PR."""

    post_comment: bool = True
    """Post or update the PR comment when running for a pull request."""

    annotations: bool = True
    """Emit workflow-command annotations for uncovered code."""

    max_annotations: int = 50
    """Upper bound on emitted annotations."""

    json_output: str = ""
    """Path of the JSON report (empty disables it)."""

    treemap_output: str = ""
    """Path of the treemap dataset (empty disables it)."""


@dataclass
class SentryConfig:
    """Sentry error monitoring configuration."""

    enabled: bool = False
    """Opt-in flag. No Sentry data sent unless True."""

    dsn: str = ""
    """Sentry DSN (Data Source Name)."""

    traces_sample_rate: float = 0.0
    """Fraction of transactions sent for tracing (0.0-1.0)."""

    environment: str = ""
    """Override environment tag (auto-detected if empty)."""


@dataclass
class CovmapConfig:
    """Complete covmap configuration from ``.covmap.yml``."""

    root: str
    """Project root the configuration was loaded from."""

    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    changeset: ChangesetConfig = field(default_factory=ChangesetConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    sentry: SentryConfig = field(default_factory=SentryConfig)

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed YAML for debugging."""

    @property
    def lcov_path(self) -> Path:
        """LCOV report path resolved against the project root."""
        return Path(self.root) / self.coverage.lcov_file


def _parse_coverage_config(raw: dict[str, Any]) -> CoverageConfig:
    coverage_raw = _section(raw, "coverage")
    return CoverageConfig(
        lcov_file=str(
            coverage_raw.get(
                "lcov_file", os.environ.get("COVMAP_LCOV_FILE", "coverage/lcov.info")
            )
        ),
        threshold=float(
            coverage_raw.get("threshold", os.environ.get("COVMAP_COVERAGE_THRESHOLD", "80"))
        ),
        low_coverage_threshold=float(coverage_raw.get("low_coverage_threshold", 80.0)),
    )


def _parse_changeset_config(raw: dict[str, Any]) -> ChangesetConfig:
    changeset_raw = _section(raw, "changeset")
    extensions = changeset_raw.get("extensions")
    return ChangesetConfig(
        target_branch=str(
            changeset_raw.get("target_branch", os.environ.get("COVMAP_TARGET_BRANCH", "main"))
        ),
        source_patterns=split_patterns(changeset_raw.get("source_patterns")),
        test_patterns=split_patterns(changeset_raw.get("test_patterns")),
        extensions=(
            [str(ext) for ext in extensions]
            if isinstance(extensions, list)
            else list(DEFAULT_EXTENSIONS)
        ),
    )


def _parse_report_config(raw: dict[str, Any]) -> ReportConfig:
    report_raw = _section(raw, "report")
    return ReportConfig(
        label=str(report_raw.get("label", "")),
        post_comment=_as_bool(report_raw.get("post_comment", True)),
        annotations=_as_bool(report_raw.get("annotations", True)),
        max_annotations=int(report_raw.get("max_annotations", 50)),
        json_output=str(report_raw.get("json_output", "")),
        treemap_output=str(report_raw.get("treemap_output", "")),
    )


def _parse_sentry_config(raw: dict[str, Any]) -> SentryConfig:
    sentry_raw = _section(raw, "sentry")
    return SentryConfig(
        enabled=_as_bool(
            sentry_raw.get("enabled", os.environ.get("COVMAP_SENTRY_ENABLED", ""))
        ),
        dsn=str(sentry_raw.get("dsn", os.environ.get("COVMAP_SENTRY_DSN", ""))),
        traces_sample_rate=float(
            sentry_raw.get(
                "traces_sample_rate",
                os.environ.get("COVMAP_SENTRY_TRACES_SAMPLE_RATE", "0.0"),
            )
        ),
        environment=str(
            sentry_raw.get("environment", os.environ.get("COVMAP_SENTRY_ENVIRONMENT", ""))
        ),
    )


def load_config(root: str | Path) -> CovmapConfig:
    """Load and parse ``.covmap.yml`` from *root*.

    Falls back to environment variables and defaults when the file is
    missing or incomplete.

    Raises:
        ValueError: If a numeric setting cannot be parsed.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)
        logger.debug("Loaded configuration from %s", config_file)

    return CovmapConfig(
        root=str(root_path),
        coverage=_parse_coverage_config(raw),
        changeset=_parse_changeset_config(raw),
        report=_parse_report_config(raw),
        sentry=_parse_sentry_config(raw),
        raw=raw,
    )


def _validate_coverage_config(coverage: CoverageConfig) -> list[str]:
    errors: list[str] = []

    if not coverage.lcov_file:
        errors.append("coverage.lcov_file is required")

    if not 0.0 <= coverage.threshold <= _MAX_PERCENTAGE:
        errors.append(
            f"coverage.threshold must be between 0 and 100 (got: {coverage.threshold})"
        )

    if not 0.0 <= coverage.low_coverage_threshold <= _MAX_PERCENTAGE:
        errors.append(
            f"coverage.low_coverage_threshold must be between 0 and 100 "
            f"(got: {coverage.low_coverage_threshold})"
        )

    return errors


def _validate_report_config(report: ReportConfig) -> list[str]:
    errors: list[str] = []

    if report.max_annotations < 1:
        errors.append(
            f"report.max_annotations must be at least 1 (got: {report.max_annotations})"
        )

    return errors


def _validate_sentry_config(sentry: SentryConfig) -> list[str]:
    errors: list[str] = []

    if sentry.enabled and not sentry.dsn:
        errors.append("sentry.dsn is required when sentry.enabled is true")

    if not 0.0 <= sentry.traces_sample_rate <= 1.0:
        errors.append(
            f"sentry.traces_sample_rate must be between 0.0 and 1.0 "
            f"(got: {sentry.traces_sample_rate})"
        )

    return errors


def validate_config(config: CovmapConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    if not config.changeset.target_branch:
        errors.append("changeset.target_branch is required")

    errors.extend(_validate_coverage_config(config.coverage))
    errors.extend(_validate_report_config(config.report))
    errors.extend(_validate_sentry_config(config.sentry))
    return errors
