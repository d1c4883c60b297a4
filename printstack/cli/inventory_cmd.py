"""Inventory listing CLI commands."""

import json

import click
from rich.console import Console
from rich.table import Table

from printstack.cli.context import get_service
from printstack.utils import format_weight

console = Console()


@click.command()
@click.option("--material", "-m", default=None, help="Only show this material type")
@click.option("--in-stock", is_flag=True, help="Only show spools in stock")
@click.pass_context
def filaments(ctx: click.Context, material: str, in_stock: bool) -> None:
    """List filament spools."""
    service = get_service(ctx)
    spools = service.list_filaments()
    if material:
        spools = [f for f in spools if f.material_type.lower() == material.lower()]
    if in_stock:
        spools = [f for f in spools if f.in_stock]

    if not spools:
        console.print("[yellow]No filaments found[/yellow]")
        return

    table = Table(title="Filaments")
    table.add_column("ID", style="dim")
    table.add_column("Brand", style="cyan")
    table.add_column("Material", style="green")
    table.add_column("Color")
    table.add_column("Remaining", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Status")

    for filament in spools:
        percent = filament.remaining_percent
        color = "green" if percent > 50 else "yellow" if percent > 20 else "red"
        status = "[green]In Stock[/green]" if filament.in_stock else "[red]Out of Stock[/red]"
        table.add_row(
            str(filament.id),
            filament.brand,
            filament.material_type,
            f"{filament.color_name} {filament.display_hex}",
            f"[{color}]{format_weight(filament.remaining_weight)} ({percent:.0f}%)[/{color}]",
            format_weight(service.filament_usage(filament.id) or 0),
            status,
        )

    console.print(table)


@click.command()
@click.option("--only", is_flag=True, help="Only show printable models")
@click.pass_context
def printable(ctx: click.Context, only: bool) -> None:
    """Show which models can be printed with current stock."""
    service = get_service(ctx)
    models = service.list_models()
    if not models:
        console.print("[yellow]No models found[/yellow]")
        return

    table = Table(title="Printable Models")
    table.add_column("Model", style="cyan")
    table.add_column("Category")
    table.add_column("Can Print", justify="center")
    table.add_column("Count", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Missing")

    for model in models:
        check = service.can_print_model(model.id)
        if only and not check.can_print:
            continue
        cost = service.estimated_model_cost(model.id)
        cost_text = f"${cost.total:.2f}" + ("*" if cost.partial else "")
        table.add_row(
            model.name,
            model.category,
            "[green]Yes[/green]" if check.can_print else "[red]No[/red]",
            str(check.can_print_count),
            cost_text,
            ", ".join(check.missing_requirements) or "-",
        )

    console.print(table)
    console.print("[dim]* partial cost, some filaments have no price[/dim]")


@click.command()
@click.option("--json-output", "-j", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx: click.Context, json_output: bool) -> None:
    """Show usage and inventory statistics."""
    statistics = get_service(ctx).statistics()

    if json_output:
        click.echo(json.dumps(statistics.to_dict(), indent=2))
        return

    console.print("[bold]Print Statistics[/bold]")
    summary = Table(show_header=False, box=None)
    summary.add_row("Total Prints:", str(statistics.total_prints))
    summary.add_row("Total Weight:", format_weight(statistics.total_weight))
    if statistics.average_variance is not None:
        summary.add_row("Average Variance:", f"{statistics.average_variance:+.1f}%")
    inventory = statistics.inventory
    summary.add_row("Spools:", f"{inventory.in_stock} in stock, {inventory.out_of_stock} out, {inventory.low_stock} low")
    summary.add_row("Remaining:", f"{format_weight(inventory.remaining_grams)} (${inventory.remaining_value:.2f})")
    console.print(summary)
    console.print()

    if statistics.material_consumption:
        table = Table(title="Material Consumption")
        table.add_column("Material")
        table.add_column("Used", justify="right")
        table.add_column("Prints", justify="right")
        table.add_column("Avg / Print", justify="right")
        for entry in statistics.material_consumption:
            table.add_row(
                entry.material_type,
                format_weight(entry.total_weight),
                str(entry.print_count),
                format_weight(entry.average_per_print),
            )
        console.print(table)

    if statistics.top_models:
        table = Table(title="Most Printed Models")
        table.add_column("Model", style="cyan")
        table.add_column("Prints", justify="right")
        table.add_column("Weight", justify="right")
        for entry in statistics.top_models:
            table.add_row(entry["modelName"], str(entry["printCount"]), format_weight(entry["totalWeight"]))
        console.print(table)

    quality = Table(title="Quality")
    quality.add_column("Rating")
    quality.add_column("Count", justify="right")
    quality.add_column("Share", justify="right")
    for rating, entry in statistics.quality_distribution.items():
        quality.add_row(rating, str(entry["count"]), f"{entry['percent']:.1f}%")
    console.print(quality)
