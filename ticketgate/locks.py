"""Keyed locks — serialise conflicting operations on the same subject.

Operations on different keys run concurrently; operations on the same key
(same owner for session creation, same channel for closure) run one at a
time.  Idle locks are dropped once nobody holds or waits on them.

Usage::

    locks = KeyedLocks("session_owner")
    async with locks.acquire(owner_id):
        ...  # check-then-create
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    """Lazily created asyncio.Lock per key, with reference counting."""

    def __init__(self, name: str = "keyed") -> None:
        self.name = name
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def status(self) -> dict[str, int]:
        """Return waiter+holder counts per key for monitoring."""
        return dict(self._users)
