"""Command-line interface for Gridbase."""

import logging

import click
import uvicorn
from rich.console import Console
from rich.panel import Panel

from gridbase import __version__
from gridbase.config import settings
from gridbase.logger import setup_global_logger

console = Console()
logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__)
def main():
    """
    Gridbase - schema-flexible tables.

    Serve the HTTP API, prepare the SQL database and load sample data.
    """
    setup_global_logger(settings.LOG_LEVEL)


@main.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to (default: 8000)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(host: str, port: int, reload: bool):
    """Start the Gridbase HTTP service."""
    console.print(
        Panel.fit(
            f"""[bold cyan]Gridbase[/bold cyan]

[dim]Backend:[/dim] {settings.BACKEND}
[dim]API:[/dim] http://{host}:{port}{settings.API_V1_STR}
[dim]Reload:[/dim] {reload}""",
            title="Server Configuration",
            border_style="cyan",
        )
    )
    try:
        uvicorn.run(
            "gridbase.main:get_application",
            factory=True,
            host=host,
            port=port,
            reload=reload,
            log_level=settings.LOG_LEVEL.lower(),
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped[/yellow]")


@main.command("init-db")
def init_db_command():
    """Create the SQL tables for the configured database."""
    from gridbase.database import create_db_engine, init_db

    init_db(create_db_engine(str(settings.SQLALCHEMY_DATABASE_URI)))
    console.print(f"[green]✓ Database ready at {settings.SQLALCHEMY_DATABASE_URI}[/green]")


@main.command()
@click.option("--workspace-id", required=True, help="Workspace to create the sample table in")
def seed(workspace_id: str):
    """Load a sample "Tasks" table into the configured backend."""
    from gridbase.adapters import get_adapter
    from gridbase.seed import seed_sample_data

    adapter = get_adapter(settings)
    table = seed_sample_data(adapter, workspace_id)
    columns = adapter.get_columns(table.id)
    rows = adapter.get_rows(table.id)
    console.print(
        Panel(
            f"""[bold green]✓ Created table {table.name}[/bold green]

[dim]Id:[/dim] {table.id}
[dim]Columns:[/dim] {", ".join(column.name for column in columns)}
[dim]Rows:[/dim] {rows.total}""",
            border_style="green",
        )
    )


if __name__ == "__main__":
    main()
