"""TicketGate CLI — Entry point.

Usage:
    ticketgate service start
    ticketgate service status
    ticketgate catalog list
    ticketgate catalog stats
    ticketgate catalog publish --actor <admin_id>
    ticketgate security keygen
    ticketgate security digest [PATH...]
    ticketgate security self-test --actor <admin_id>
    ticketgate security blacklist <user_id> --actor <admin_id>
"""

from __future__ import annotations

import typer
from rich.console import Console

from ticketgate.cli.commands import catalog, security, service

app = typer.Typer(
    name="ticketgate",
    help="TicketGate — Gated single-session tickets with confirmed purchases.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.add_typer(service.app, name="service")
app.add_typer(catalog.app, name="catalog")
app.add_typer(security.app, name="security")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
