"""CLI — Security commands.

``keygen`` and ``digest`` run locally; the rest call a running service and
need an admin actor ID.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ticketgate.cli.commands._client import client
from ticketgate.security.crypto import generate_key
from ticketgate.security.integrity import compute_digest

app = typer.Typer(help="Keys, integrity digests and security administration.")
console = Console()


@app.command("keygen")
def keygen() -> None:
    """Print fresh encryption and signing keys for config.yaml."""
    console.print("security:")
    console.print(f"  encryption_key: {generate_key()}")
    console.print(f"  signing_key: {generate_key()}")


@app.command("digest")
def digest(
    paths: list[Path] = typer.Argument(None, help="Files or directories. Default: the installed package."),
) -> None:
    """Print the integrity digest the monitor would compute."""
    if not paths:
        import ticketgate

        paths = [Path(ticketgate.__file__).parent]
    console.print(compute_digest(paths))


@app.command("self-test")
def self_test(
    actor: str = typer.Option(..., "--actor", help="Admin user ID."),
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(41000),
    token: str | None = typer.Option(None, envvar="TICKETGATE_SERVER__API_TOKEN"),
) -> None:
    """Run the service's security self-test."""
    try:
        with client(host, port, token, actor) as http:
            resp = http.get("/security/self-test")
            resp.raise_for_status()
            data = resp.json()
    except Exception as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    table = Table(title="Security Self-Test")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Detail")
    for check in data["checks"]:
        table.add_row(
            check["name"],
            "[green]pass[/green]" if check["passed"] else "[red]FAIL[/red]",
            check.get("detail", ""),
        )
    console.print(table)
    if not data["passed"]:
        raise typer.Exit(2)


@app.command("blacklist")
def blacklist(
    user_id: str = typer.Argument(help="User to blacklist."),
    actor: str = typer.Option(..., "--actor", help="Admin user ID."),
    reason: str = typer.Option("No reason given", "--reason", "-r"),
    remove: bool = typer.Option(False, "--remove", help="Remove from the blacklist instead."),
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(41000),
    token: str | None = typer.Option(None, envvar="TICKETGATE_SERVER__API_TOKEN"),
) -> None:
    """Add a user to (or remove one from) the blacklist."""
    try:
        with client(host, port, token, actor) as http:
            if remove:
                resp = http.delete(f"/security/blacklist/{user_id}")
            else:
                resp = http.post("/security/blacklist", json={"user_id": user_id, "reason": reason})
            resp.raise_for_status()
            data = resp.json()
    except Exception as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    console.print(json.dumps(data, indent=2))
