"""Report generation orchestration."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.table import Table

from storyshot.models.config import FrameworkConfig
from storyshot.models.result import RunResult

from .html_report import generate_html_report
from .json_report import generate_json_report

logger = logging.getLogger(__name__)


class Reporter:
    """Generates reports from reconciliation results."""

    def __init__(self, config: FrameworkConfig):
        self.config = config

    def generate_reports(self, run_result: RunResult, output_dir: Path | None = None) -> dict[str, str]:
        """Generate all configured report formats. Returns format -> file path."""
        out_dir = output_dir or self.config.reports_dir
        out_dir.mkdir(parents=True, exist_ok=True)
        generated = {}
        logger.debug("Report output directory: %s", out_dir)

        if "html" in self.config.report_formats:
            path = out_dir / f"report_{run_result.run_id}.html"
            generate_html_report(run_result, path)
            generated["html"] = str(path)
            logger.info("HTML report: %s", path)

        if "json" in self.config.report_formats:
            path = out_dir / f"report_{run_result.run_id}.json"
            generate_json_report(run_result, path)
            generated["json"] = str(path)
            logger.info("JSON report: %s", path)

        return generated


def build_summary_table(run_result: RunResult) -> Table:
    table = Table(title=f"Results Summary ({run_result.mode})")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", run_result.run_id)
    table.add_row("Platform", run_result.platform)
    table.add_row("Browsers", ", ".join(run_result.browsers))
    table.add_row("Duration", f"{run_result.duration_seconds}s")
    table.add_row("Units", str(run_result.total_units))
    if run_result.mode == "update":
        table.add_row("Baselines Updated", f"[blue]{run_result.baselines_updated}[/blue]")
    else:
        table.add_row("Baselines Created", f"[blue]{run_result.baselines_created}[/blue]")
        table.add_row("Passed", f"[green]{run_result.passed}[/green]")
        table.add_row("Regressions", f"[red]{run_result.failed}[/red]")
    table.add_row("Storage Errors", f"[red]{run_result.storage_errors}[/red]")
    table.add_row("Capture Errors", f"[red]{run_result.capture_errors}[/red]")
    table.add_row("Other Errors", f"[red]{run_result.errors}[/red]")
    return table


def build_failures_table(run_result: RunResult) -> Table:
    table = Table(title="Failures")
    table.add_column("Story")
    table.add_column("Browser")
    table.add_column("Outcome", style="red")
    table.add_column("Detail")
    for r in run_result.failures:
        detail = r.diff_path or r.message
        table.add_row(r.story_id, r.browser, r.outcome.value, detail)
    return table


def print_summary(run_result: RunResult, console: Console) -> None:
    console.print(build_summary_table(run_result))
    if run_result.has_failures:
        console.print(build_failures_table(run_result))
