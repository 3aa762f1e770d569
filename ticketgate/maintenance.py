"""Maintenance — retention cleanup and orphan reconciliation on demand."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from ticketgate.logging import get_logger
from ticketgate.sessions.manager import SessionManager
from ticketgate.store.repository import Repository

log = get_logger(__name__)


@dataclass
class CleanupReport:
    purged_events: int = 0
    closed_sessions: list[str] = field(default_factory=list)
    ran_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "purged_events": self.purged_events,
            "closed_sessions": self.closed_sessions,
            "ran_at": self.ran_at,
        }


class MaintenanceService:
    def __init__(self, repo: Repository, sessions: SessionManager, retention_days: int = 30) -> None:
        self._repo = repo
        self._sessions = sessions
        self._retention_days = retention_days

    async def run_cleanup(self) -> CleanupReport:
        """Purge security events past retention, then close orphaned sessions."""
        report = CleanupReport()
        cutoff = report.ran_at - self._retention_days * 86400
        report.purged_events = await self._repo.purge_security_events(cutoff)
        report.closed_sessions = await self._sessions.reconcile_orphans()
        log.info(
            "cleanup_completed",
            purged_events=report.purged_events,
            closed_sessions=len(report.closed_sessions),
        )
        return report
