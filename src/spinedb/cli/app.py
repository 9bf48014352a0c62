"""
Root Typer application for the spinedb CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from spinedb import __version__
from spinedb.cli.migrate import app as migrate_app
from spinedb.cli.utils import cli_settings, console, reported_errors
from spinedb.manager import ConnectionManager

app = Typer(
    name="spinedb",
    help="spinedb - database access layer, schema tooling and migrations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"spinedb {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Settings file (default: ./spinedb.toml when present).",
    ),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """spinedb CLI - migrate and maintain configured databases."""
    ctx.obj = {"config": config}


@app.command()
def flush(
    ctx: typer.Context,
    connection: str = typer.Option("default", "--connection", "-c", help="Named connection"),
    data_only: bool = typer.Option(
        False, "--data-only", help="Delete rows but keep tables (migration tracking survives)"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Drop every table and view, or with --data-only delete all rows."""
    what = "all data" if data_only else "all tables and views"
    if not yes:
        typer.confirm(f"Remove {what} of connection '{connection}'?", abort=True)

    settings = cli_settings(ctx)
    with reported_errors(), ConnectionManager(settings) as manager:
        platform = manager.get_connection(connection).get_platform()
        if data_only:
            platform.flush_data()
        else:
            platform.flush_database()
    console.print(f"Removed {what} of [green]{connection}[/green]")


app.add_typer(migrate_app, name="migrate", help="Database migrations.")
