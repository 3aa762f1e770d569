"""CLI — Service management commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from ticketgate.cli.commands._client import client

app = typer.Typer(help="Start and inspect the TicketGate service.")
console = Console()


@app.command("start")
def start(
    host: str = typer.Option("127.0.0.1", help="Host to bind to."),
    port: int = typer.Option(41000, help="Port to listen on."),
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    log_level: str = typer.Option("info", help="Log level."),
) -> None:
    """Start the TicketGate service."""
    from ticketgate.api.server import create_app
    from ticketgate.config import Settings

    settings = Settings.load(config_file=config)
    settings.server.host = host
    settings.server.port = port

    console.print(f"[bold green]Starting TicketGate on {host}:{port}[/bold green]")

    app_instance = create_app(settings=settings)

    uvicorn.run(app_instance, host=host, port=port, log_level=log_level)


@app.command("status")
def status(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(41000),
    token: str | None = typer.Option(None, envvar="TICKETGATE_SERVER__API_TOKEN"),
) -> None:
    """Check service status."""
    try:
        with client(host, port, token) as http:
            data = http.get("/health").json()
    except Exception as exc:
        console.print(f"[red]Service unreachable: {exc}[/red]")
        raise typer.Exit(1)

    table = Table(title="TicketGate Status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for k, v in data.items():
        table.add_row(str(k), str(v))
    console.print(table)
    if data.get("halted"):
        raise typer.Exit(2)
