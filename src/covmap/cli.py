"""covmap CLI — top-level command group."""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from covmap import __version__
from covmap.adapters.coverage import CoverageFileNotFoundError, CoverageReport, LcovAdapter
from covmap.analyzers.coverage import CoverageAnalysisResult, CoverageAnalyzer, format_analysis
from covmap.analyzers.gating import evaluate_gating, format_gating_result
from covmap.analyzers.treemap import generate_treemap_data
from covmap.config import CovmapConfig, SentryConfig, load_config, validate_config
from covmap.models.changeset import (
    Changeset,
    create_changeset,
    filter_by_extensions,
    filter_by_patterns,
    format_changeset,
)
from covmap.reporters.annotations import format_workflow_command, generate_annotations
from covmap.reporters.github_comment import comment_title, post_coverage_comment_from_env
from covmap.reporters.json_reporter import JSONReporter, write_treemap_data
from covmap.reporters.terminal import reporter
from covmap.telemetry import init_sentry, start_span
from covmap.utils.ci_context import detect_ci_context, write_github_outputs
from covmap.utils.git import GitOperationError, detect_changes

logger = logging.getLogger(__name__)
console = Console()

# Masking thresholds
_MIN_MASKED_VALUE_LENGTH = 8
_SENSITIVE_KEYS = {"dsn", "token", "password"}

_TRUTHY_ENV = {"1", "true", "yes"}


def _configure_logging(*, verbose: bool) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


def _init_sentry_from_env() -> None:
    """Initialize Sentry from environment variables before any config is read."""
    if os.environ.get("COVMAP_SENTRY_ENABLED", "").strip().lower() not in _TRUTHY_ENV:
        return
    dsn = os.environ.get("COVMAP_SENTRY_DSN", "").strip()
    if not dsn:
        return
    init_sentry(
        SentryConfig(
            enabled=True,
            dsn=dsn,
            traces_sample_rate=float(os.environ.get("COVMAP_SENTRY_TRACES_SAMPLE_RATE", "0.0")),
        )
    )


def _config_to_dict(config: CovmapConfig) -> dict[str, Any]:
    result = asdict(config)
    result.pop("raw", None)
    return result


def _mask_sensitive_values(config_dict: dict[str, Any]) -> dict[str, Any]:
    """Recursively mask sensitive values in a configuration dict."""
    result = copy.deepcopy(config_dict)

    def _mask_dict(data: dict[str, Any]) -> None:
        for key, value in data.items():
            if key in _SENSITIVE_KEYS and isinstance(value, str) and value:
                if len(value) > _MIN_MASKED_VALUE_LENGTH:
                    data[key] = f"{value[:4]}...{value[-4:]}"
                else:
                    data[key] = "***"
            elif isinstance(value, dict):
                _mask_dict(value)

    _mask_dict(result)
    return result


def _load_config_or_abort(path: str) -> CovmapConfig:
    try:
        return load_config(path)
    except (ValueError, yaml.YAMLError) as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.version_option(version=__version__, prog_name="covmap")
@click.pass_context
def cli(ctx: click.Context, *, verbose: bool) -> None:
    """covmap — coverage analysis, treemaps and gating for pull requests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose=verbose)
    _init_sentry_from_env()


# ── parse ──────────────────────────────────────────────────────────


@cli.command("parse")
@click.argument("lcov_file", type=click.Path(dir_okay=False))
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the per-file summary as JSON.",
)
def parse_command(lcov_file: str, *, as_json: bool) -> None:
    """Parse an LCOV file and print its coverage totals."""
    try:
        report = LcovAdapter().parse_coverage_file(lcov_file)
    except CoverageFileNotFoundError as e:
        reporter.print_error(str(e))
        raise click.Abort from e

    if as_json:
        payload = {
            "summary": asdict(report.summary),
            "files": {path: asdict(file.summary) for path, file in report.files.items()},
        }
        click.echo(json.dumps(payload, indent=2))
        return

    reporter.print_report_summary(report)


# ── analyze ────────────────────────────────────────────────────────


def _resolve_lcov_path(config: CovmapConfig, lcov_file: str | None) -> Path:
    """Pick the LCOV report: explicit option, configured path, then auto-detection."""
    root = Path(config.root)
    if lcov_file:
        candidate = Path(lcov_file)
        return candidate if candidate.is_absolute() else root / candidate

    configured = config.lcov_path
    if configured.is_file():
        return configured

    detected = LcovAdapter().find_report(root)
    if detected is not None:
        logger.info("Using detected LCOV report %s", detected)
        return detected
    return configured


def _load_report(path: Path) -> CoverageReport:
    try:
        with reporter.create_status("Parsing LCOV report..."), start_span(
            "covmap.parse", "Parse LCOV report"
        ):
            return LcovAdapter().parse_coverage_file(path)
    except CoverageFileNotFoundError as e:
        reporter.print_error(str(e))
        raise click.Abort from e


def _build_changeset(
    config: CovmapConfig,
    files: tuple[str, ...],
    base_commit: str,
) -> Changeset:
    if files:
        return create_changeset(
            files,
            base_commit=base_commit,
            target_branch=config.changeset.target_branch,
        )
    try:
        with start_span("covmap.changeset", "Detect changed files"):
            return detect_changes(config.root, config.changeset.target_branch)
    except GitOperationError as e:
        reporter.print_error(f"Failed to detect changed files: {e}")
        raise click.Abort from e


def _emit_annotations(
    config: CovmapConfig,
    result: CoverageAnalysisResult,
    *,
    forced: bool | None,
) -> int:
    ci = detect_ci_context()
    enabled = forced if forced is not None else (config.report.annotations and ci.is_github_actions)
    if not enabled:
        return 0

    annotations = generate_annotations(
        result,
        low_coverage_threshold=config.coverage.low_coverage_threshold,
        max_annotations=config.report.max_annotations,
    )
    for annotation in annotations:
        click.echo(format_workflow_command(annotation))
    return len(annotations)


@cli.command("analyze")
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
@click.option("--lcov-file", default=None, help="LCOV report path (relative to --path).")
@click.option(
    "--threshold",
    type=float,
    default=None,
    help="Minimum PR coverage percentage; 0 compares against project coverage.",
)
@click.option("--target-branch", default=None, help="Branch the pull request targets.")
@click.option(
    "--files",
    multiple=True,
    help="Analyze these files instead of asking git (repeatable).",
)
@click.option(
    "--base-commit",
    default="HEAD",
    show_default=True,
    help="Base commit recorded for --files changesets.",
)
@click.option("--source-patterns", default=None, help="Comma-separated source globs.")
@click.option("--test-patterns", default=None, help="Comma-separated test globs to exclude.")
@click.option("--json-output", default=None, help="Write the JSON report to this path.")
@click.option("--treemap-output", default=None, help="Write the treemap dataset to this path.")
@click.option(
    "--annotations/--no-annotations",
    default=None,
    help="Emit GitHub workflow-command annotations (default: only in GitHub Actions).",
)
@click.option(
    "--comment/--no-comment",
    default=None,
    help="Post the PR comment when running for a pull request.",
)
@click.option("--label", default=None, help="Label distinguishing this coverage comment.")
@click.option("--plain", is_flag=True, help="Print plain-text summaries instead of tables.")
def analyze_command(  # noqa: PLR0913
    path: str,
    lcov_file: str | None,
    threshold: float | None,
    target_branch: str | None,
    files: tuple[str, ...],
    base_commit: str,
    source_patterns: str | None,
    test_patterns: str | None,
    json_output: str | None,
    treemap_output: str | None,
    annotations: bool | None,
    comment: bool | None,
    label: str | None,
    *,
    plain: bool,
) -> None:
    """Analyze coverage of changed files and gate the pull request.

    Exits with status 1 when the changed files' coverage fails the gate.

    Example:
      covmap analyze --threshold 80
      covmap analyze --threshold 0 --files src/app.ts --files src/util.ts
    """
    config = _load_config_or_abort(path)
    if threshold is not None:
        config.coverage.threshold = threshold
    if target_branch:
        config.changeset.target_branch = target_branch
    if label is not None:
        config.report.label = label

    errors = validate_config(config)
    if errors:
        for error in errors:
            reporter.print_error(error)
        raise click.Abort

    init_sentry(config.sentry)

    if not plain:
        reporter.print_header(comment_title(config.report.label or None))

    report = _load_report(_resolve_lcov_path(config, lcov_file))
    changeset = _build_changeset(config, files, base_commit)
    changeset = filter_by_extensions(changeset, config.changeset.extensions)
    changeset = filter_by_patterns(
        changeset,
        source_patterns or config.changeset.source_patterns,
        test_patterns or config.changeset.test_patterns,
    )
    if changeset.is_empty:
        reporter.print_warning("No changed source files to analyze")

    with start_span("covmap.analyze", "Analyze changed-file coverage"):
        result = CoverageAnalyzer().analyze(changeset, report)
        gating = evaluate_gating(result, report.summary, config.coverage.threshold)

    if plain:
        click.echo(format_changeset(changeset))
        click.echo()
        click.echo(format_analysis(result))
        click.echo()
        click.echo(format_gating_result(gating))
    else:
        reporter.print_changeset(changeset)
        reporter.print_analysis(result)
        reporter.print_uncovered_regions(result)
        reporter.print_gating(gating)

    _emit_annotations(config, result, forced=annotations)

    root = Path(config.root)
    treemap_target = treemap_output or config.report.treemap_output
    if treemap_target:
        treemap = generate_treemap_data(result)
        write_treemap_data(root / treemap_target, treemap)
        reporter.print_treemap_summary(treemap)

    json_target = json_output or config.report.json_output
    if json_target:
        JSONReporter().generate(root / json_target, result, gating=gating)
        reporter.print_info(f"JSON report written to {json_target}")

    write_github_outputs(
        {
            "coverage-percentage": result.overall_percentage,
            "meets-threshold": gating.passed,
            "files-analyzed": result.summary.total_changed_files,
            "files-with-coverage": result.summary.files_with_coverage,
            "changed-files-count": changeset.total_files,
        }
    )

    post_comment = comment if comment is not None else config.report.post_comment
    if post_comment:
        post_coverage_comment_from_env(
            result,
            report,
            gating,
            label=config.report.label or None,
            treemap_path=treemap_target or None,
        )

    if not gating.passed:
        reporter.print_error(gating.error_message or gating.description)
        raise SystemExit(1)

    reporter.print_success(gating.description)


# ── config ─────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Inspect `.covmap.yml` configuration."""


@config_group.command("show")
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
@click.option("--json-output", "as_json", is_flag=True, help="Output as JSON instead of YAML.")
@click.option("--no-mask", is_flag=True, help="Show sensitive values unmasked.")
def config_show(path: str, *, as_json: bool, no_mask: bool) -> None:
    """Display the resolved configuration with sensitive values masked."""
    config = _load_config_or_abort(path)

    config_dict = _config_to_dict(config)
    if not no_mask:
        config_dict = _mask_sensitive_values(config_dict)

    if as_json:
        click.echo(json.dumps(config_dict, indent=2))
    else:
        console.print()
        console.print("[bold cyan]Configuration:[/bold cyan]")
        console.print()
        click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
def config_validate(path: str) -> None:
    """Validate `.covmap.yml` and report every problem found."""
    config = _load_config_or_abort(path)

    errors = validate_config(config)
    if not errors:
        reporter.print_success("Configuration is valid!")
        return

    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    console.print()
    for idx, error in enumerate(errors, start=1):
        console.print(f"  {idx}. [red]{error}[/red]")
    console.print()
    console.print(
        "[dim]Fix these errors in .covmap.yml and run 'covmap config validate' again.[/dim]"
    )
    raise click.Abort


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
