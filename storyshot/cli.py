"""CLI entry point for storyshot."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from storyshot.errors import ConfigurationError
from storyshot.models.config import SUPPORTED_BROWSERS, FrameworkConfig
from storyshot.orchestrator import Orchestrator
from storyshot.reporter.reporter import print_summary
from storyshot.storage.keys import derive_key

console = Console()

DEFAULT_CONFIG_FILE = "storyshot.json"

EXIT_FAILURES = 1
EXIT_CONFIG_ERROR = 2

browser_option = click.option(
    "--browser", "-b", "browsers", multiple=True,
    type=click.Choice(SUPPORTED_BROWSERS), help="Browser to run (repeatable)",
)
config_option = click.option(
    "--config", "-c", default=None, help="Config file path (defaults to environment variables)",
)


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [RichHandler(console=console, rich_tracebacks=True)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        handlers.append(file_handler)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
    )


def _load_config(config: str | None) -> FrameworkConfig:
    try:
        if config:
            return FrameworkConfig.load(config)
        return FrameworkConfig.from_env()
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config}[/red]")
        console.print("Run 'storyshot init' to create a default config.")
        sys.exit(EXIT_CONFIG_ERROR)
    except ConfigurationError as e:
        _abort(e)


def _abort(error: Exception) -> None:
    console.print(f"[red]{escape(str(error))}[/red]")
    sys.exit(EXIT_CONFIG_ERROR)


def _print_reports(reports: dict[str, str]) -> None:
    for fmt, path in reports.items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--log-file", default=None, help="Also write logs to this file")
def cli(verbose: bool, log_file: str | None) -> None:
    """Baseline snapshot reconciliation for Storybook visual regression."""
    setup_logging(verbose, log_file)


@cli.command()
@browser_option
@config_option
def run(browsers: tuple[str, ...], config: str | None) -> None:
    """Capture every visual story and compare it against its baseline."""
    cfg = _load_config(config)
    try:
        run_result, reports = Orchestrator(cfg).run_verify(list(browsers) or None)
    except ConfigurationError as e:
        _abort(e)

    console.print("\n[bold green]Run Complete[/bold green]")
    print_summary(run_result, console)
    _print_reports(reports)
    if run_result.has_failures:
        console.print(f"[red]{len(run_result.failures)} unit(s) failed[/red]")
        sys.exit(EXIT_FAILURES)


@cli.command("update-baselines")
@browser_option
@config_option
@click.option("--yes", is_flag=True, help="Overwrite baselines without UPDATE_BASELINES=true")
def update_baselines(browsers: tuple[str, ...], config: str | None, yes: bool) -> None:
    """Accept the current renders as the new baselines."""
    cfg = _load_config(config)
    if yes:
        cfg = cfg.model_copy(update={"update_baselines": True})
    if not cfg.update_baselines:
        console.print("[red]Refusing to overwrite baselines.[/red] "
                      "Set UPDATE_BASELINES=true or pass --yes.")
        sys.exit(EXIT_CONFIG_ERROR)

    try:
        run_result, reports = Orchestrator(cfg).run_update(list(browsers) or None)
    except ConfigurationError as e:
        _abort(e)

    console.print("\n[bold green]Baselines Updated[/bold green]")
    print_summary(run_result, console)
    _print_reports(reports)
    if run_result.has_failures:
        sys.exit(EXIT_FAILURES)


@cli.command()
@config_option
def stories(config: str | None) -> None:
    """List the stories selected for visual checks."""
    cfg = _load_config(config)
    try:
        selected = Orchestrator(cfg).list_stories()
    except ConfigurationError as e:
        _abort(e)

    platform = sys.platform
    table = Table(title=f"Visual Stories ({len(selected)})")
    table.add_column("Story ID", style="bold")
    table.add_column("Test Name")
    table.add_column("Keys")
    for story in selected:
        keys = "\n".join(derive_key(story.test_name, b, platform) for b in cfg.browsers)
        table.add_row(story.id, story.test_name, keys)
    console.print(table)


@cli.command()
@click.argument("test_name")
@click.option("--browser", "-b", default="chromium", type=click.Choice(SUPPORTED_BROWSERS))
@click.option("--platform", "-p", default=sys.platform, show_default=True)
def key(test_name: str, browser: str, platform: str) -> None:
    """Print the storage key for TEST_NAME."""
    click.echo(derive_key(test_name, browser, platform))


@cli.command()
@config_option
def check(config: str | None) -> None:
    """Verify Storybook is reachable and prepare the output directories."""
    cfg = _load_config(config)
    try:
        Orchestrator(cfg).run_check()
    except ConfigurationError as e:
        _abort(e)
    console.print("[green]Environment ready[/green]")


@cli.command()
@click.option("--storybook-url", "-u", default="http://localhost:6006", help="Storybook base URL")
def init(storybook_url: str) -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG_FILE)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG_FILE} already exists. Overwrite?"):
            return

    cfg = FrameworkConfig(storybook={"url": storybook_url})
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("Edit the file to configure storage, tolerance and browsers.")


if __name__ == "__main__":
    cli()
