"""Sessions layer — Periodic orphan reconciliation.

Runs ``SessionManager.reconcile_orphans`` on its own interval, independently
of the per-session idle timers.  A failing sweep is logged and the loop
carries on; the sweep itself is idempotent.
"""

from __future__ import annotations

import asyncio

from ticketgate.logging import get_logger
from ticketgate.sessions.manager import SessionManager

log = get_logger(__name__)


class OrphanSweeper:
    def __init__(self, manager: SessionManager, interval_seconds: float = 3600) -> None:
        self._manager = manager
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self.sweeps = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._interval <= 0:
            log.info("orphan_sweeper_disabled")
            return
        self._task = asyncio.create_task(self._loop(), name="orphan_sweeper")
        log.debug("orphan_sweeper_started", interval=self._interval)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        log.debug("orphan_sweeper_stopped")

    async def sweep_once(self) -> list[str]:
        closed = await self._manager.reconcile_orphans()
        self.sweeps += 1
        return closed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception as exc:
                log.error("orphan_sweep_failed", error=str(exc))
