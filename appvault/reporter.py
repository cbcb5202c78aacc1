from __future__ import annotations

from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from appvault.domain.models import AppRecord


def build_catalog_table(records: Sequence[AppRecord], title: str = "App Vault") -> Table:
    """
    Render catalog records as a rich table, in mirror order.

    The image column shows the resolved display image, the same one a card
    would load.
    """
    categories = len({record.category for record in records})
    table = Table(
        title=f"{title}\n[dim]{len(records)} apps │ {categories} categories[/dim]",
        box=box.ROUNDED,
        caption="Ordered by creation time",
    )

    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Category", style="magenta")
    table.add_column("URL", style="green")
    table.add_column("Image", style="blue", overflow="fold")
    table.add_column("Created", justify="right", style="yellow")
    table.add_column("Updated", justify="right", style="yellow")

    for record in records:
        updated = record.updated_at.strftime("%Y-%m-%d %H:%M") if record.updated_at else "-"
        table.add_row(
            record.id,
            record.name,
            record.category.value,
            record.url,
            record.display_image,
            record.created_at.strftime("%Y-%m-%d %H:%M"),
            updated,
        )
    return table


def print_catalog(
    records: Sequence[AppRecord],
    title: str = "App Vault",
    console: Optional[Console] = None,
) -> None:
    console = console or Console()

    if not records:
        console.print("[yellow]The vault is empty.[/yellow]")
        return

    console.print(build_catalog_table(records, title=title))


__all__ = ["build_catalog_table", "print_catalog"]
