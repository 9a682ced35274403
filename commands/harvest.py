"""
Harvest CLI commands.

Usage:
    ./trawler.py harvest contests [--include-private] [--all]   # List eligible contests
    ./trawler.py harvest run [--strategy direct|clone]          # Harvest bytecode
    ./trawler.py harvest remappings <path>                      # Show resolved remappings
    ./trawler.py harvest check                                  # Check solc / git
"""

import asyncio
import logging
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from harvest import HarvestConfig, HarvestPipeline, save_results
from harvest.compiler import SolcRunner
from harvest.config import STRATEGIES
from harvest.contests import ListingScraper, partition_contests
from harvest.contests.eligibility import utc_now
from harvest.contests.contest import HarvestState
from harvest.errors import ConfigError, HarvestError, MissingTokenError
from harvest.sources import RepoCloner, read_remappings


console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def load_config(**overrides) -> HarvestConfig:
    """Build the run config or exit with a readable error."""
    try:
        config = HarvestConfig.from_env().with_overrides(**overrides)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise SystemExit(1)
    return config


@click.group("harvest")
def harvest():
    """Harvest contract bytecode from open audit contests."""
    pass


@harvest.command("contests")
@click.option("--include-private", is_flag=True, help="Include contests without public code access")
@click.option("--all", "show_all", is_flag=True, help="Also show excluded contests")
def contests(include_private: bool, show_all: bool):
    """List contests eligible for harvesting."""
    config = load_config(public_only=False if include_private else None)
    setup_logging(config.log_level)

    async def run():
        async with ListingScraper(config.listing_url, config.request_timeout, config.user_agent) as scraper:
            return await scraper.fetch_listing()

    listing = asyncio.run(run())
    if listing.error:
        console.print(f"[red]Listing could not be parsed: {listing.error}[/red]")
        raise SystemExit(1)

    kept, excluded = partition_contests(listing.contests, now=utc_now(), public_only=config.public_only)

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", width=8)
    table.add_column("Sponsor", width=24)
    table.add_column("Repository", width=40)
    table.add_column("Ends", width=17)
    table.add_column("Access", width=8)
    table.add_column("Status", width=14)

    rows = [(c, None) for c in kept]
    if show_all:
        rows += excluded

    for contest, reason in rows:
        end = contest.end_instant
        table.add_row(
            contest.label,
            (contest.sponsor or "-")[:24],
            (contest.repo or "-")[:40],
            end.strftime("%Y-%m-%d %H:%M") if end else "Unknown",
            contest.code_access or "-",
            "[green]eligible[/green]" if reason is None else f"[dim]{reason}[/dim]",
        )

    console.print(table)
    console.print(f"\n[dim]{len(kept)} eligible of {len(listing.contests)} listed[/dim]")
    if listing.dropped:
        console.print(f"[yellow]{listing.dropped} record(s) failed validation and were dropped[/yellow]")


@harvest.command("run")
@click.option("--strategy", type=click.Choice(list(STRATEGIES)), default=None, help="Source acquisition strategy")
@click.option("--include-private", is_flag=True, help="Harvest contests without public code access too")
@click.option("--contest", "-c", "only", multiple=True, help="Only this contest id/slug (repeatable)")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Output directory")
@click.option("--save/--no-save", default=True, help="Write results to the output directory")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def run(strategy: str | None, include_private: bool, only: tuple[str, ...], output: Path | None, save: bool, verbose: bool):
    """Harvest bytecode from every eligible contest."""
    config = load_config(
        strategy=strategy,
        public_only=False if include_private else None,
        output_dir=output,
        log_level="DEBUG" if verbose else None,
    )
    setup_logging(config.log_level)

    try:
        config.require_token()
    except MissingTokenError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    console.print(f"\n[bold]Harvesting contests[/bold] [dim]({config.strategy} strategy)[/dim]\n")

    async def execute():
        async with HarvestPipeline(config) as pipeline:
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, pipeline.cancel)
            except (NotImplementedError, RuntimeError):
                pass
            return await pipeline.run(only=only or None)

    report = asyncio.run(execute())

    table = Table(show_header=True, header_style="bold")
    table.add_column("Contest", width=10)
    table.add_column("Repository", width=36)
    table.add_column("State", width=16)
    table.add_column("Contracts", width=10)
    table.add_column("Note", width=50)

    for outcome in report.outcomes:
        state = outcome.state
        color = "green" if state == HarvestState.EXTRACTED else "yellow"
        table.add_row(
            outcome.contest.label,
            outcome.repository[:36],
            f"[{color}]{state.value}[/{color}]",
            str(len(outcome.bytecodes)),
            (outcome.skip_reason or "")[:50],
        )

    console.print(table)
    console.print(f"\n[dim]{report.summary()}[/dim]")

    if report.listing_error:
        console.print(f"[red]Listing error: {report.listing_error}[/red]")

    if save:
        paths = save_results(report, config.output_dir)
        console.print(f"\n[green]Saved report to {paths['report']}[/green]")


@harvest.command("remappings")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def remappings(path: Path):
    """Show the remappings resolved from a remappings file."""
    try:
        entries = read_remappings(path.resolve())
    except HarvestError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    if not entries:
        console.print("[yellow]No remappings found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Alias")
    table.add_column("Path")
    for entry in entries:
        table.add_row(entry.name, entry.path)
    console.print(table)


@harvest.command("check")
def check():
    """Check that the compiler and git are available."""
    config = load_config()
    tools = {
        "solc": SolcRunner.from_config(config).is_available(),
        "git": RepoCloner(config.clone_dir).is_available(),
    }

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Version/Error")
    for name, (available, info) in tools.items():
        status = "[green]Available[/green]" if available else "[red]Not found[/red]"
        table.add_row(name, status, info)
    table.add_row(
        "GitHub token",
        "[green]Configured[/green]" if config.github_token else "[red]Missing[/red]",
        "GITHUB_PA_TOKEN",
    )
    console.print(table)
