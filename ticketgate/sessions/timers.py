"""Sessions layer — Per-session scheduled tasks.

Two kinds of deferred side effect hang off a session:

idle timers
    Armed on creation, fire the idle-timeout closure after the configured
    duration.  Cancelled by any explicit close.

channel deletions
    Scheduled once by whichever closure wins the OPEN → CLOSED transition.
    ``schedule_deletion`` refuses a second schedule for the same session, so
    a channel is deleted at most once even if two paths race.

Both are plain asyncio tasks stored by session ID.  ``stop()`` cancels
everything still pending.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from ticketgate.logging import get_logger

log = get_logger(__name__)

SessionCallback = Callable[[str], Awaitable[None]]


class SessionTimers:
    def __init__(self) -> None:
        self._idle: dict[str, asyncio.Task[None]] = {}
        self._deletions: dict[str, asyncio.Task[None]] = {}

    # ---------------------------------------------------------------------------
    # Idle timers
    # ---------------------------------------------------------------------------

    def arm_idle(self, session_id: str, delay: float, callback: SessionCallback) -> None:
        """Arm (or re-arm) the idle timer for *session_id*."""
        self.cancel_idle(session_id)
        self._idle[session_id] = asyncio.create_task(
            self._run(session_id, max(0.0, delay), callback, self._idle, "idle"),
            name=f"idle:{session_id}",
        )
        log.debug("idle_timer_armed", session_id=session_id, delay=delay)

    def cancel_idle(self, session_id: str) -> bool:
        """Cancel the pending idle timer.  Returns True if one was pending.

        Safe to call from inside the timer's own callback: the running task is
        only forgotten, never cancelled.
        """
        task = self._idle.pop(session_id, None)
        if task is None or task.done():
            return False
        if task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def has_idle(self, session_id: str) -> bool:
        return session_id in self._idle

    # ---------------------------------------------------------------------------
    # Channel deletions
    # ---------------------------------------------------------------------------

    def schedule_deletion(self, session_id: str, delay: float, callback: SessionCallback) -> bool:
        """Schedule the one channel deletion for *session_id*.

        Returns False (and schedules nothing) if a deletion is already pending.
        """
        if session_id in self._deletions:
            log.warning("deletion_already_scheduled", session_id=session_id)
            return False
        self._deletions[session_id] = asyncio.create_task(
            self._run(session_id, max(0.0, delay), callback, self._deletions, "deletion"),
            name=f"delete:{session_id}",
        )
        return True

    def has_deletion(self, session_id: str) -> bool:
        return session_id in self._deletions

    async def join(self) -> None:
        """Wait for every scheduled deletion to finish."""
        while self._deletions:
            await asyncio.gather(*list(self._deletions.values()), return_exceptions=True)

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    def status(self) -> dict[str, int]:
        return {"idle": len(self._idle), "deletions": len(self._deletions)}

    async def stop(self) -> None:
        tasks = [*self._idle.values(), *self._deletions.values()]
        self._idle.clear()
        self._deletions.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.debug("session_timers_stopped", cancelled=len(tasks))

    async def _run(
        self,
        session_id: str,
        delay: float,
        callback: SessionCallback,
        registry: dict[str, asyncio.Task[None]],
        kind: str,
    ) -> None:
        try:
            await asyncio.sleep(delay)
            await callback(session_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error("session_timer_failed", kind=kind, session_id=session_id, error=str(exc))
        finally:
            if registry.get(session_id) is asyncio.current_task():
                del registry[session_id]
