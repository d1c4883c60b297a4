"""Import and export CLI commands."""

from pathlib import Path

import click
from rich.console import Console

from printstack.cli.context import get_service

console = Console()


@click.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export(ctx: click.Context, path: Path) -> None:
    """Export the inventory to a JSON file."""
    document = get_service(ctx).export()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document, encoding="utf-8")
    console.print(f"[green]Exported inventory to {path}[/green]")


@click.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--mode", "-m", default="replace", type=click.Choice(["replace", "add"]),
              help="Replace current collections or add to them")
@click.pass_context
def import_cmd(ctx: click.Context, path: Path, mode: str) -> None:
    """Import an inventory JSON file.

    Examples:

        printstack import backup.json

        printstack import friend.json --mode add
    """
    result = get_service(ctx).import_data(path.read_text(encoding="utf-8"), mode)

    if not result.success:
        console.print(f"[red]Import failed: {result.error.message}[/red]")
        for rejected in getattr(result.error, "rejected", []):
            console.print(f"  [red]✗[/red] {rejected.kind} {rejected.name}")
        raise SystemExit(1)

    summary = result.value
    imported = ", ".join(f"{count} {kind}" for kind, count in summary.imported.items())
    console.print(f"[green]Imported {imported} ({mode})[/green]")
    for rejected in summary.rejected:
        fields = ", ".join(f"{k}: {v}" for k, v in rejected.errors.items())
        console.print(f"  [red]✗[/red] Rejected {rejected.kind} {rejected.name}: {fields}")
    for warning in summary.warnings:
        console.print(f"  [yellow]⚠[/yellow] {warning}")
