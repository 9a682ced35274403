#!/usr/bin/env python3
"""Trawler - contract bytecode harvesting for audit contests.

Finds open contests, pulls their Solidity repositories from GitHub,
compiles them and collects per-contract deployable bytecode.
"""

from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

import click
import typer
from rich.console import Console


console = Console()

app = typer.Typer(
    name="trawler",
    help="Harvest contract bytecode from open audit contests",
    add_completion=False,
)

harvest_app = typer.Typer(help="Contest discovery and bytecode harvesting")
app.add_typer(harvest_app, name="harvest")


def _invoke_click(command: click.Command, params: dict) -> None:
    """Run a click command with already-parsed parameters."""
    ctx = click.Context(command)
    with ctx:
        ctx.invoke(command, **params)


# ─────────────────────────────────────────────────────────────────────────────
# Harvest Commands
# ─────────────────────────────────────────────────────────────────────────────

@harvest_app.command("contests")
def harvest_contests(
    include_private: bool = typer.Option(False, "--include-private", help="Include contests without public code access"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Also show excluded contests"),
):
    """List contests eligible for harvesting."""
    from commands.harvest import contests
    _invoke_click(contests, {'include_private': include_private, 'show_all': show_all})


@harvest_app.command("run")
def harvest_run(
    strategy: str = typer.Option(None, "--strategy", "-s", help="Acquisition strategy (direct, clone)"),
    include_private: bool = typer.Option(False, "--include-private", help="Harvest private contests too"),
    contest: list[str] = typer.Option(None, "--contest", "-c", help="Only this contest id/slug (can specify multiple)"),
    output: Path = typer.Option(None, "--output", "-o", help="Output directory"),
    save: bool = typer.Option(True, "--save/--no-save", help="Write results to the output directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Harvest bytecode from every eligible contest."""
    from commands.harvest import run
    if strategy and strategy not in ("direct", "clone"):
        console.print(f"[red]Unknown strategy: {strategy}. Use direct or clone.[/red]")
        raise typer.Exit(1)
    _invoke_click(run, {
        'strategy': strategy,
        'include_private': include_private,
        'only': tuple(contest) if contest else (),
        'output': output,
        'save': save,
        'verbose': verbose,
    })


@harvest_app.command("remappings")
def harvest_remappings(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Path to remappings.txt"),
):
    """Show the remappings resolved from a remappings file."""
    from commands.harvest import remappings
    _invoke_click(remappings, {'path': path})


@harvest_app.command("check")
def harvest_check():
    """Check that the compiler and git are available."""
    from commands.harvest import check
    _invoke_click(check, {})


@app.command()
def version():
    """Show Trawler version."""
    console.print("[bold]Trawler[/bold] v0.1.0")
    console.print("Contract bytecode harvesting for audit contests")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
