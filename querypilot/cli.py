"""
QueryPilot CLI

Command-line interface for interacting with QueryPilot.

Usage:
    querypilot ask -d 1 "每个地区上周的订单总额"    # One turn, answering clarifications inline
    querypilot compass -d 1                        # Foreign-key map
    querypilot join-path -d 1 orders regions       # Shortest JOIN chain
    querypilot search -d 1 "alice"                 # Keyword search across text columns
    querypilot resync -d 1                         # Rebuild the schema graph
    querypilot serve                               # Run the HTTP API
"""

import asyncio
import logging
import sys
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from querypilot import __version__
from querypilot.config import get_settings
from querypilot.discovery.errors import DiscoveryError
from querypilot.models.turn import Clarification, FinalAnswer, TurnResult
from querypilot.runtime import Runtime, build_runtime

console = Console()


def configure_cli_logging(verbose: bool) -> None:
    if verbose:
        get_settings().logging.configure()
        return
    logging.disable(logging.CRITICAL)
    for logger_name in ("querypilot", "httpx", "openai", "anthropic", "chromadb"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


def _run(command: Callable[[Runtime], Awaitable[None]]) -> None:
    """Build a runtime, run ``command`` against it and always close it."""

    async def main() -> None:
        runtime = await build_runtime()
        try:
            await command(runtime)
        finally:
            await runtime.close()

    try:
        asyncio.run(main())
    except DiscoveryError as e:
        console.print(f"[red]{e.kind}: {e}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def print_turn_result(result: TurnResult) -> None:
    if isinstance(result, FinalAnswer):
        console.print(Panel(Markdown(result.text), title="[bold green]Answer[/bold green]"))
        if result.sql:
            console.print(Syntax(result.sql, "sql", theme="monokai", line_numbers=False))
        if result.safety and result.safety.warnings:
            for warning in result.safety.warnings:
                console.print(f"[yellow]! {warning}[/yellow]")
        return
    if isinstance(result, Clarification):
        console.print(f"[bold cyan]?[/bold cyan] {result.question}")
        for index, option in enumerate(result.options, start=1):
            console.print(f"  {index}. {option}")
        return
    console.print(f"[red]{result.error}: {result.message}[/red]")


def print_rows(rows: list[dict[str, Any]], title: str | None = None) -> None:
    if not rows:
        console.print("[dim]No rows.[/dim]")
        return
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for column in rows[0]:
        table.add_column(str(column))
    for row in rows:
        table.add_row(*("NULL" if value is None else str(value) for value in row.values()))
    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="QueryPilot")
@click.option("-v", "--verbose", is_flag=True, help="Show application logs")
def cli(verbose: bool):
    """QueryPilot - conversational query assistant for databases and search engines."""
    configure_cli_logging(verbose)


@cli.command()
@click.argument("message")
@click.option("-d", "--data-source", "data_source_id", required=True, type=int)
@click.option("--user", "user_id", default="cli", show_default=True)
@click.option(
    "--max-clarifications",
    default=3,
    show_default=True,
    type=int,
    help="Maximum clarification rounds before stopping.",
)
def ask(message: str, data_source_id: int, user_id: str, max_clarifications: int):
    """Run one turn and answer clarification questions interactively."""

    async def run(runtime: Runtime) -> None:
        conversation_id = uuid.uuid4().hex
        current = message
        for _ in range(max(0, max_clarifications) + 1):
            with console.status("[cyan]Thinking...[/cyan]", spinner="dots"):
                result = await runtime.pipeline.run_turn(
                    current, user_id, data_source_id, conversation_id
                )
            print_turn_result(result)
            if not isinstance(result, Clarification):
                return
            current = console.input("[bold cyan]Reply:[/bold cyan] ").strip()
            if not current:
                return
        console.print("[yellow]Clarification limit reached.[/yellow]")

    _run(run)


@cli.command()
@click.option("-d", "--data-source", "data_source_id", required=True, type=int)
def compass(data_source_id: int):
    """Print every foreign-key relation of the data source."""

    async def run(runtime: Runtime) -> None:
        edges = await runtime.discovery.get_database_compass(data_source_id)
        if not edges:
            console.print("[dim]No foreign-key relations found.[/dim]")
            return
        table = Table(title=f"Data source {data_source_id}", header_style="bold cyan")
        table.add_column("From")
        table.add_column("To")
        for edge in edges:
            table.add_row(f"{edge.from_table}.{edge.from_column}", f"{edge.to_table}.{edge.to_column}")
        console.print(table)

    _run(run)


@cli.command("join-path")
@click.argument("start_table")
@click.argument("end_table")
@click.option("-d", "--data-source", "data_source_id", required=True, type=int)
def join_path(start_table: str, end_table: str, data_source_id: int):
    """Print the shortest JOIN chain between two tables."""

    async def run(runtime: Runtime) -> None:
        fragments = await runtime.discovery.find_join_path(data_source_id, start_table, end_table)
        if not fragments:
            console.print("[dim]Same table; no JOIN is needed.[/dim]")
            return
        console.print(Syntax("\n".join(fragments), "sql", theme="monokai"))

    _run(run)


@cli.command()
@click.argument("keyword")
@click.option("-d", "--data-source", "data_source_id", required=True, type=int)
@click.option("--limit", "limit_per_table", type=int, default=None, help="Rows per table")
def search(keyword: str, data_source_id: int, limit_per_table: int | None):
    """Search a keyword across every text column of the data source."""

    async def run(runtime: Runtime) -> None:
        with console.status(f"[cyan]Searching for {keyword!r}...[/cyan]", spinner="dots"):
            result = await runtime.discovery.cross_entity_search(
                data_source_id, keyword, limit_per_table
            )
        if not result.results:
            console.print(f"[dim]No matches in {result.scanned_tables} tables.[/dim]")
        for match in result.results:
            print_rows(match.matches, title=f"{match.table} ({', '.join(match.columns)})")
        if result.partial:
            console.print("[yellow]Search timed out; results are partial.[/yellow]")

    _run(run)


@cli.command()
@click.option("-d", "--data-source", "data_source_id", required=True, type=int)
def resync(data_source_id: int):
    """Rebuild the cached schema graph from the live catalog."""

    async def run(runtime: Runtime) -> None:
        report = await runtime.discovery.resync(data_source_id)
        console.print(
            f"[green]✓[/green] Data source {report.data_source_id}: "
            f"{report.tables} tables, graph version {report.version}, {report.indexed} indexed"
        )

    _run(run)


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to API_HOST)")
@click.option("--port", default=None, type=int, help="Port (defaults to API_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "querypilot.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


if __name__ == "__main__":
    cli()
