"""TicketGate — Gated single-session ticket and purchase workflow.

TicketGate runs private support/purchase sessions ("tickets") on top of a
chat platform.  Each user holds at most one open session, every inbound
action passes a security gate first, and catalog purchases go through a
short-lived confirmation step before a session and a pending sale exist.

Architecture layers (bottom to top):
    1. Security     — blacklist, rate limiters, payload cipher, signed tokens,
                      integrity monitor, audit trail
    2. Store        — repository boundary + aiosqlite implementation
    3. Sessions     — lifecycle manager, idle timers, orphan sweeper
    4. Commerce     — catalog, confirmation gate, purchase protocol
    5. Interactions — closed action enumeration + exhaustive dispatch
    6. API/CLI      — FastAPI admin surface, Typer command line
"""

__version__ = "0.1.0"
__author__ = "TicketGate Contributors"
__license__ = "Apache-2.0"

__all__ = ["__version__"]
