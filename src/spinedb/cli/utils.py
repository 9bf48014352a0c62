"""
CLI utility helpers - settings, error reporting and output.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from spinedb.errors import SpineDBError
from spinedb.logging import configure_logging
from spinedb.migrations import MigrationResult
from spinedb.settings import SpineDBSettings, load_settings

console = Console()
err_console = Console(stderr=True)


def cli_settings(ctx: typer.Context) -> SpineDBSettings:
    """Load settings from the root ``--config`` option and set up logging."""
    config: Path | None = (ctx.obj or {}).get("config")
    with reported_errors():
        settings = load_settings(config)
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    return settings


@contextmanager
def reported_errors() -> Iterator[None]:
    """Print spinedb errors in red on stderr and exit with code 1."""
    try:
        yield
    except SpineDBError as e:
        err_console.print(f"[bold red]Error[/bold red] ({type(e).__name__}): {e.message}")
        raise typer.Exit(code=1) from e


def render_migration_result(result: MigrationResult, *, title: str = "Migrate UP") -> None:
    table = Table(title=title)
    table.add_column("Version", style="cyan")
    table.add_column("Status")
    stale = set(result.stale)
    for version in result.applied:
        table.add_row(version, "[green]applied[/green]")
    for version in result.skipped:
        status = "[yellow]stale[/yellow]" if version in stale else "[dim]skipped[/dim]"
        table.add_row(version, status)
    console.print(table)

    if result.flushed:
        console.print("[yellow]Database flushed before re-applying stale migrations[/yellow]")
    if result.truncated:
        console.print("[yellow]Data tables truncated[/yellow]")
    console.print(f"[bold]{result.count}[/bold] DB migrations applied")
