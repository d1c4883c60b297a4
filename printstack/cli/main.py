"""Main CLI entry point for PrintStack."""

import click
from rich.console import Console
from rich.table import Table

from printstack import __version__
from printstack.config import get_settings
from printstack.cli.context import get_service
from printstack.utils import format_size, setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="PrintStack")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """PrintStack - 3D printing filament inventory.

    Tracks filament spools, printable models and print history over a
    file-backed store in the configured data directory.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging("DEBUG" if verbose else get_settings().log_level)


# Import and register commands
from printstack.cli.inventory_cmd import filaments, printable, stats
from printstack.cli.transfer_cmd import export, import_cmd

cli.add_command(filaments)
cli.add_command(printable)
cli.add_command(stats)
cli.add_command(export)
cli.add_command(import_cmd)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show storage location and inventory counts."""
    settings = get_settings()
    service = get_service(ctx)
    counts = service.repository.counts()
    storage = service.storage_stats()

    console.print("[bold]PrintStack Status[/bold]")
    console.print(f"Version: {__version__}")
    console.print()

    table = Table(show_header=False, box=None)
    table.add_row("Environment:", settings.environment)
    table.add_row("Namespace:", storage.namespace)
    table.add_row("Store file:", str(settings.store_path))
    table.add_row("Filaments:", str(counts["filaments"]))
    table.add_row("Models:", str(counts["models"]))
    table.add_row("Prints:", str(counts["prints"]))
    table.add_row("Stored keys:", str(storage.key_count))
    table.add_row("Stored size:", format_size(storage.total_bytes))
    console.print(table)

    if storage.using_fallback:
        console.print("[yellow]Store unavailable, using in-memory storage[/yellow]")
    for warning in service.migration_report:
        console.print(f"  [yellow]⚠[/yellow] {warning}")


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Delete all inventory data in the current environment."""
    if not yes:
        click.confirm("Delete all filaments, models and prints?", abort=True)
    removed = get_service(ctx).clear()
    console.print(f"[green]Cleared {removed} stored keys[/green]")


def main() -> None:
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
