"""Security layer — Code integrity monitor.

Takes a SHA-256 digest over a sorted snapshot of the core source files at
startup, then recomputes it periodically.  The first mismatch is fatal: the
monitor invokes its violation callback exactly once, marks itself halted and
stops checking.  There is no retry and no recovery short of a restart.

Usage::

    monitor = IntegrityMonitor([Path(ticketgate.__file__).parent], interval_seconds=300,
                               on_violation=gate.handle_integrity_violation)
    await monitor.start()
    ...
    await monitor.stop()
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Awaitable, Callable

from ticketgate.logging import get_logger

log = get_logger(__name__)

ViolationCallback = Callable[[str, str], Awaitable[None]]


def _snapshot_files(paths: list[Path]) -> list[tuple[str, Path]]:
    files: list[tuple[str, Path]] = []
    for root in paths:
        root = root.expanduser()
        if root.is_dir():
            for p in sorted(root.rglob("*.py")):
                files.append((p.relative_to(root).as_posix(), p))
        else:
            files.append((root.name, root))
    return sorted(files, key=lambda f: f[0])


def compute_digest(paths: list[Path]) -> str:
    """Hex SHA-256 over every file under *paths*, in a stable order."""
    hasher = hashlib.sha256()
    for name, path in _snapshot_files(paths):
        hasher.update(name.encode("utf-8"))
        hasher.update(b"\0")
        try:
            hasher.update(path.read_bytes())
        except FileNotFoundError:
            hasher.update(b"<missing>")
        hasher.update(b"\0")
    return hasher.hexdigest()


class IntegrityMonitor:
    def __init__(
        self,
        paths: list[Path],
        interval_seconds: float = 300,
        on_violation: ViolationCallback | None = None,
    ) -> None:
        self._paths = paths
        self._interval = interval_seconds
        self._on_violation = on_violation
        self._baseline: str | None = None
        self._halted = False
        self._task: asyncio.Task[None] | None = None

    @property
    def baseline(self) -> str | None:
        return self._baseline

    @property
    def halted(self) -> bool:
        return self._halted

    def capture_baseline(self) -> str:
        self._baseline = compute_digest(self._paths)
        log.info("integrity_baseline_captured", digest=self._baseline[:16], paths=len(self._paths))
        return self._baseline

    async def check(self) -> bool:
        """Verify once; on the first mismatch halt and fire the callback."""
        if self._halted:
            return False
        actual = compute_digest(self._paths)
        if self._baseline is None:
            self._baseline = actual
            return True
        if actual == self._baseline:
            log.debug("integrity_check_passed")
            return True

        self._halted = True
        log.critical("integrity_violation", expected=self._baseline, actual=actual)
        if self._on_violation is not None:
            await self._on_violation(self._baseline, actual)
        return False

    # ---------------------------------------------------------------------------
    # Background loop
    # ---------------------------------------------------------------------------

    async def start(self) -> None:
        if self._baseline is None:
            self.capture_baseline()
        if self._interval > 0:
            self._task = asyncio.create_task(self._loop(), name="integrity_monitor")
            log.debug("integrity_monitor_started", interval=self._interval)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        log.debug("integrity_monitor_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if not await self.check():
                return
