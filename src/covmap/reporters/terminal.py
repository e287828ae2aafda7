"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from covmap.analyzers.coverage import format_percentage, uncovered_lines
from covmap.analyzers.regions import group_consecutive_lines

if TYPE_CHECKING:
    from rich.status import Status

    from covmap.adapters.coverage.base import CoverageReport
    from covmap.analyzers.coverage import CoverageAnalysisResult, CoverageMetrics
    from covmap.analyzers.gating import GatingResult
    from covmap.analyzers.treemap import TreemapData
    from covmap.models.changeset import Changeset

console = Console()

_HIGH_COVERAGE = 80.0
_MEDIUM_COVERAGE = 50.0

# Display limits for truncation
_MAX_FILES_DISPLAY = 50
_MAX_REGIONS_DISPLAY = 5


class CLIReporter:
    """Rich terminal output for coverage runs."""

    def __init__(self) -> None:
        self.console = console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    def create_status(self, message: str) -> Status:
        """Create a Rich Status spinner for long-running operations."""
        return self.console.status(message)

    # ── Coverage tables ────────────────────────────────────────────────

    def print_report_summary(self, report: CoverageReport) -> None:
        """Print found/hit totals of a parsed coverage report."""
        summary = report.summary
        table = Table(title="Coverage Report", title_style="bold cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Hit", justify="right")
        table.add_column("Found", justify="right")
        table.add_column("Coverage", justify="right")

        rows = [
            ("Lines", summary.lines_hit, summary.lines_found),
            ("Functions", summary.functions_hit, summary.functions_found),
            ("Branches", summary.branches_hit, summary.branches_found),
        ]
        for name, hit, found in rows:
            pct = hit / found * 100 if found else 100.0
            table.add_row(name, str(hit), str(found), self._colored_percentage(pct))

        self.console.print(table)
        self.console.print(f"[dim]{summary.total_files} source files[/dim]")

    def print_changeset(self, changeset: Changeset) -> None:
        """Print the changed files under analysis."""
        self.console.print(
            f"[bold]Target branch:[/bold] {changeset.target_branch}  "
            f"[bold]Base:[/bold] {changeset.base_commit[:12]}  "
            f"[bold]Files:[/bold] {changeset.total_files}"
        )

    def print_analysis(self, result: CoverageAnalysisResult) -> None:
        """Print per-file coverage of the changed files plus the weighted total."""
        table = Table(title="Changed Files Coverage", title_style="bold cyan")
        table.add_column("File", style="bold")
        table.add_column("Lines", justify="right")
        table.add_column("Functions", justify="right")
        table.add_column("Branches", justify="right")
        table.add_column("Overall", justify="right")

        for file in result.changed_files[:_MAX_FILES_DISPLAY]:
            if file.has_coverage:
                table.add_row(file.path, *self._metric_cells(file.analysis))
            else:
                table.add_row(file.path, "-", "-", "-", "[red]no data[/red]")

        hidden = len(result.changed_files) - _MAX_FILES_DISPLAY
        if hidden > 0:
            table.add_row(f"[dim]... and {hidden} more[/dim]", "", "", "", "")

        table.add_section()
        table.add_row("[bold]Overall[/bold]", *self._metric_cells(result.summary.overall))
        self.console.print(table)

        summary = result.summary
        self.console.print(
            f"[dim]{summary.files_with_coverage} of {summary.total_changed_files} "
            f"changed files have coverage data[/dim]"
        )

    def print_uncovered_regions(self, result: CoverageAnalysisResult) -> None:
        """Print uncovered line ranges per changed file."""
        pairs = uncovered_lines(result)
        if not pairs:
            return

        table = Table(title="Uncovered Lines", title_style="bold yellow")
        table.add_column("File", style="bold")
        table.add_column("Lines")

        for path, lines in pairs:
            groups = group_consecutive_lines(lines)
            ranges = [
                str(group[0]) if len(group) == 1 else f"{group[0]}-{group[-1]}"
                for group in groups[:_MAX_REGIONS_DISPLAY]
            ]
            if len(groups) > _MAX_REGIONS_DISPLAY:
                ranges.append(f"(+{len(groups) - _MAX_REGIONS_DISPLAY} more)")
            table.add_row(path, ", ".join(ranges))

        self.console.print(table)

    def print_gating(self, gating: GatingResult) -> None:
        """Print the gating decision in a panel."""
        style = "green" if gating.passed else "red"
        self.console.print()
        self.console.print(
            Panel(
                f"[bold {style}]{gating.description}[/bold {style}]",
                title=f"Coverage Gating ({gating.mode.value})",
                border_style=style,
                padding=(0, 2),
            )
        )

    def print_treemap_summary(self, treemap: TreemapData) -> None:
        """Print node counts per coverage class."""
        counts: dict[str, int] = {}
        for node in treemap.children:
            counts[node.coverage.value] = counts.get(node.coverage.value, 0) + 1
        parts = [f"{name}: {counts.get(name, 0)}" for name in ("full", "partial", "none")]
        self.console.print(
            f"[dim]Treemap: {len(treemap.children)} nodes ({', '.join(parts)})[/dim]"
        )

    def _metric_cells(self, metrics: CoverageMetrics) -> list[str]:
        return [
            f"{metrics.covered_lines}/{metrics.total_lines}",
            f"{metrics.covered_functions}/{metrics.total_functions}",
            f"{metrics.covered_branches}/{metrics.total_branches}",
            self._colored_percentage(metrics.overall_percentage),
        ]

    def _colored_percentage(self, percentage: float) -> str:
        color = self._get_coverage_color(percentage)
        return f"[{color}]{format_percentage(round(percentage, 2))}%[/{color}]"

    def _get_coverage_color(self, percentage: float) -> str:
        """Get a color based on coverage percentage."""
        if percentage >= _HIGH_COVERAGE:
            return "green"
        if percentage >= _MEDIUM_COVERAGE:
            return "yellow"
        return "red"


# Singleton instance for easy import
reporter = CLIReporter()
