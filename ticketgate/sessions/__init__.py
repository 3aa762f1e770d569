"""Sessions layer — lifecycle manager, idle timers, transcripts, orphan sweeper."""

from ticketgate.sessions.manager import (
    IDLE_TIMEOUT_REASON,
    ORPHAN_REASON,
    ClosureResult,
    SessionManager,
    channel_name,
)
from ticketgate.sessions.sweeper import OrphanSweeper
from ticketgate.sessions.timers import SessionTimers
from ticketgate.sessions.transcript import Transcript, render_transcript

__all__ = [
    "ClosureResult",
    "IDLE_TIMEOUT_REASON",
    "ORPHAN_REASON",
    "OrphanSweeper",
    "SessionManager",
    "SessionTimers",
    "Transcript",
    "channel_name",
    "render_transcript",
]
