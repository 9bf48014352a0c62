"""
CLI: ``spinedb migrate`` - apply, inspect and generate migrations.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from spinedb.cli.utils import cli_settings, console, render_migration_result, reported_errors
from spinedb.manager import ConnectionManager
from spinedb.migrations import MigrationManager, generate_migration

app = typer.Typer(no_args_is_help=True)


@app.command()
def up(
    ctx: typer.Context,
    connection: str = typer.Option("default", "--connection", "-c", help="Named connection"),
    directory: Path | None = typer.Option(None, "--directory", "-d", help="Migrations directory"),
    truncate: bool = typer.Option(
        False, "--truncate", help="Empty data tables when everything is already applied"
    ),
    flush_stale: bool = typer.Option(
        False, "--flush-stale", help="Rebuild the database when a migration file changed"
    ),
) -> None:
    """Apply pending migrations."""
    settings = cli_settings(ctx)
    with reported_errors(), ConnectionManager(settings) as manager:
        conn = manager.get_connection(connection)
        console.print(f"Migrate UP: [green]{connection}[/green]")
        result = MigrationManager(conn).migrate_directory_up(
            directory or settings.migrations_dir,
            truncate=truncate,
            flush_stale=flush_stale,
        )
    render_migration_result(result)


@app.command()
def status(
    ctx: typer.Context,
    connection: str = typer.Option("default", "--connection", "-c", help="Named connection"),
    directory: Path | None = typer.Option(None, "--directory", "-d", help="Migrations directory"),
) -> None:
    """Show applied and pending migrations."""
    settings = cli_settings(ctx)
    with reported_errors(), ConnectionManager(settings) as manager:
        migrations = MigrationManager(manager.get_connection(connection))
        sources = migrations.discover(directory or settings.migrations_dir)
        applied = {record.version: record.migrated for record in migrations.applied()}

    table = Table(title=f"Migrations: {connection}")
    table.add_column("Version", style="cyan")
    table.add_column("File")
    table.add_column("Migrated (UTC)")
    for source in sources:
        migrated = applied.get(source.version)
        table.add_row(source.version, source.path.name, migrated or "[yellow]pending[/yellow]")
    console.print(table)
    pending = sum(1 for s in sources if s.version not in applied)
    console.print(f"[bold]{pending}[/bold] pending")


@app.command()
def generate(
    ctx: typer.Context,
    directory: Path | None = typer.Option(None, "--directory", "-d", help="Migrations directory"),
) -> None:
    """Write an empty migration file named after the current UTC time."""
    settings = cli_settings(ctx)
    with reported_errors():
        path = generate_migration(directory or settings.migrations_dir)
    console.print(f"Created [green]{path}[/green]")
