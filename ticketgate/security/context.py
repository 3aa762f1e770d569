"""Security layer — Explicit holder for process-wide admission state.

The blacklist set, the named rate limiters and the admin allow-list are the
only shared mutable security state in the process.  They live on one
``SecurityContext`` that is constructed at startup, passed by reference to
every component that needs it, and torn down at shutdown.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from ticketgate.config import LimiterConfig, SecurityConfig
from ticketgate.logging import get_logger
from ticketgate.security.rate_limiter import FixedWindowRateLimiter
from ticketgate.store.repository import Repository

log = get_logger(__name__)


class SecurityContext:
    def __init__(
        self,
        admin_ids: list[str] | frozenset[str],
        limiters: dict[str, LimiterConfig],
        repo: Repository | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.admin_ids: frozenset[str] = frozenset(admin_ids)
        self.limiters: dict[str, FixedWindowRateLimiter] = {
            name: FixedWindowRateLimiter(name, cfg.points, cfg.window_seconds, clock=clock)
            for name, cfg in limiters.items()
        }
        self.repo = repo
        self._blacklist: set[str] = set()
        self._blacklist_lock = asyncio.Lock()
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: SecurityConfig,
        repo: Repository | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "SecurityContext":
        return cls(config.admin_ids, config.limiters, repo=repo, clock=clock)

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    async def start(self) -> None:
        """Load the persisted blacklist."""
        if self.repo is not None:
            persisted = await self.repo.list_blacklisted()
            async with self._blacklist_lock:
                self._blacklist.update(persisted)
        self._started = True
        log.info(
            "security_context_started",
            admins=len(self.admin_ids),
            limiters=sorted(self.limiters),
            blacklisted=len(self._blacklist),
        )

    async def stop(self) -> None:
        async with self._blacklist_lock:
            self._blacklist.clear()
        for limiter in self.limiters.values():
            limiter.reset()
        self._started = False
        log.info("security_context_stopped")

    # ---------------------------------------------------------------------------
    # Blacklist set
    # ---------------------------------------------------------------------------

    def is_blacklisted(self, user_id: str) -> bool:
        return user_id in self._blacklist

    async def add_to_blacklist(self, user_id: str) -> bool:
        """Return True if the user was not already blacklisted."""
        async with self._blacklist_lock:
            if user_id in self._blacklist:
                return False
            self._blacklist.add(user_id)
            return True

    async def remove_from_blacklist(self, user_id: str) -> bool:
        async with self._blacklist_lock:
            if user_id not in self._blacklist:
                return False
            self._blacklist.discard(user_id)
            return True

    def blacklisted(self) -> list[str]:
        return sorted(self._blacklist)
