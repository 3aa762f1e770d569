"""Security layer — Named fixed-window rate limiters.

Each limiter has a point budget per window and keeps one independent counter
per subject.  A window opens on the first consumption after the previous
window expired; consumptions beyond the budget are rejected until it resets.

State is process-local and rebuilt from zero on restart.

Usage::

    limiter = FixedWindowRateLimiter("commands", points=5, window_seconds=60)
    decision = await limiter.consume("user-42")
    if not decision.allowed:
        ...  # decision.reset_seconds until the next window
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable

from ticketgate.logging import get_logger
from ticketgate.security.models import RateLimitDecision

log = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class _Window:
    started_at: float
    consumed: int = 0


class FixedWindowRateLimiter:
    """Per-subject fixed-window counter guarded by a single lock."""

    def __init__(
        self,
        name: str,
        points: int,
        window_seconds: float,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.points = points
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = asyncio.Lock()

    async def consume(self, subject_id: str, points: int = 1) -> RateLimitDecision:
        """Consume *points* for *subject_id*.  Never raises."""
        async with self._lock:
            now = self._clock()
            self._prune(now)
            window = self._windows.get(subject_id)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now)
                self._windows[subject_id] = window

            reset_in = self.window_seconds - (now - window.started_at)
            if window.consumed + points > self.points:
                return RateLimitDecision(
                    allowed=False,
                    remaining=max(0, self.points - window.consumed),
                    reset_seconds=max(1, math.ceil(reset_in)),
                )
            window.consumed += points
            return RateLimitDecision(
                allowed=True,
                remaining=self.points - window.consumed,
                reset_seconds=max(1, math.ceil(reset_in)),
            )

    def reset(self, subject_id: str | None = None) -> None:
        """Reset one subject, or every subject when *subject_id* is None."""
        if subject_id is None:
            self._windows.clear()
        else:
            self._windows.pop(subject_id, None)

    def tracked_subjects(self) -> int:
        return len(self._windows)

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, w in self._windows.items()
            if now - w.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
