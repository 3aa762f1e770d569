"""CLI — Catalog inspection commands."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from ticketgate.cli.commands._client import client

app = typer.Typer(help="Inspect the product catalog.")
console = Console()


@app.command("list")
def list_items(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(41000),
    token: str | None = typer.Option(None, envvar="TICKETGATE_SERVER__API_TOKEN"),
    all_items: bool = typer.Option(False, "--all", help="Include deactivated items."),
) -> None:
    """List catalog items."""
    try:
        with client(host, port, token) as http:
            resp = http.get("/catalog", params={"include_inactive": all_items})
            resp.raise_for_status()
            items = resp.json()
    except Exception as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    table = Table(title="Catalog")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Price", justify="right")
    table.add_column("Stock", justify="right")
    table.add_column("Sold", justify="right")
    table.add_column("Active")

    for item in items:
        stock = item.get("stock", -1)
        table.add_row(
            str(item.get("item_id")),
            item.get("name", ""),
            item.get("price", "-"),
            "∞" if stock < 0 else str(stock),
            str(item.get("sales_count", 0)),
            "yes" if item.get("is_active") else "[red]no[/red]",
        )
    console.print(table)


@app.command("stats")
def stats(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(41000),
    token: str | None = typer.Option(None, envvar="TICKETGATE_SERVER__API_TOKEN"),
) -> None:
    """Show sales statistics."""
    try:
        with client(host, port, token) as http:
            resp = http.get("/catalog/stats")
            resp.raise_for_status()
            data = resp.json()
    except Exception as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    console.print(f"Active items: [bold]{data['active_items']}[/bold] / {data['total_items']}")
    console.print(f"Completed sales: [bold]{data['completed_sales']}[/bold]  pending: {data['pending_sales']}")
    console.print(f"Revenue: [bold green]{data['revenue']}[/bold green]")
    for rank, top in enumerate(data.get("top_items", []), start=1):
        console.print(f"  {rank}. {top['name']} ({top['sales_count']} sold)")


@app.command("publish")
def publish(
    actor: str = typer.Option(..., "--actor", help="Admin user ID."),
    channel: str | None = typer.Option(None, "--channel", help="Switch the products channel first."),
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(41000),
    token: str | None = typer.Option(None, envvar="TICKETGATE_SERVER__API_TOKEN"),
) -> None:
    """Post the storefront to the products channel."""
    try:
        with client(host, port, token, actor) as http:
            resp = http.post("/setup/products", json={"channel_id": channel})
            resp.raise_for_status()
            data = resp.json()
    except Exception as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    console.print(f"Published [bold]{data['items']}[/bold] items to <#{data['channel_id']}>")
