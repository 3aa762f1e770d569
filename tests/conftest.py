"""Shared pytest fixtures for the ticketgate test suite."""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio

from ticketgate.commerce.catalog import CatalogService
from ticketgate.commerce.confirmation import ConfirmationGate
from ticketgate.commerce.purchases import PurchaseService
from ticketgate.config import LimiterConfig, SessionConfig, Settings, override_settings
from ticketgate.interactions import InteractionRouter
from ticketgate.platform.memory import MemoryChannelProvider
from ticketgate.security.audit import SecurityAuditor
from ticketgate.security.context import SecurityContext
from ticketgate.security.crypto import PayloadCipher, TokenSigner
from ticketgate.security.gate import SecurityGate
from ticketgate.security.models import Actor
from ticketgate.sessions.manager import SessionManager
from ticketgate.sessions.timers import SessionTimers
from ticketgate.store.sqlite import SQLiteRepository

ADMIN_ID = "admin-1"
CATEGORY_ID = "cat-1"
BOT_ID = "bot"


class ManualClock:
    """Deterministic clock for limiter and token tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_actor(user_id: str = "user-1", **kwargs: object) -> Actor:
    kwargs.setdefault("display_name", user_id)
    kwargs.setdefault("avatar", "avatar.png")
    return Actor(user_id=user_id, **kwargs)  # type: ignore[arg-type]


@pytest.fixture
def make_actor() -> Callable[..., Actor]:
    return _make_actor


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        security={
            "admin_ids": [ADMIN_ID],
            "encryption_key": os.urandom(32).hex(),
            "signing_key": os.urandom(32).hex(),
            "integrity_check_interval_seconds": 0,
            "integrity_paths": [str(tmp_path / "code")],
        },
        sessions={
            "category_id": CATEGORY_ID,
            "close_grace_seconds": 0,
            "idle_grace_seconds": 0,
            "orphan_sweep_interval_seconds": 0,
        },
        storage={"db_path": str(tmp_path / "ticketgate.db")},
        logging={"level": "debug", "format": "console", "audit_file": None},
    )
    override_settings(settings)
    return settings


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def repo(tmp_path: Path) -> AsyncGenerator[SQLiteRepository, None]:
    store = SQLiteRepository(tmp_path / "test.db")
    await store.init()
    yield store
    await store.close()


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def limiters() -> dict[str, LimiterConfig]:
    return {
        "commands": LimiterConfig(points=5, window_seconds=60),
        "tickets": LimiterConfig(points=100, window_seconds=300),
        "interactions": LimiterConfig(points=100, window_seconds=60),
    }


@pytest_asyncio.fixture
async def gate(repo: SQLiteRepository, clock: ManualClock, limiters: dict[str, LimiterConfig]) -> SecurityGate:
    context = SecurityContext([ADMIN_ID], limiters, repo=repo, clock=clock)
    await context.start()
    return SecurityGate(
        context,
        SecurityAuditor(repo),
        PayloadCipher(os.urandom(32)),
        TokenSigner(os.urandom(32), default_ttl=60, clock=clock),
    )


# ---------------------------------------------------------------------------
# Sessions / commerce
# ---------------------------------------------------------------------------


@pytest.fixture
def provider() -> MemoryChannelProvider:
    return MemoryChannelProvider(bot_id=BOT_ID)


@pytest.fixture
def session_config(tmp_path: Path) -> SessionConfig:
    return SessionConfig(
        category_id=CATEGORY_ID,
        close_grace_seconds=0,
        idle_grace_seconds=0,
        transcript_dir=tmp_path / "transcripts",
    )


@pytest_asyncio.fixture
async def manager(
    repo: SQLiteRepository,
    provider: MemoryChannelProvider,
    gate: SecurityGate,
    session_config: SessionConfig,
) -> AsyncGenerator[SessionManager, None]:
    timers = SessionTimers()
    yield SessionManager(repo, provider, gate, timers, session_config, bot_id=BOT_ID)
    await timers.stop()


@pytest.fixture
def catalog(repo: SQLiteRepository, gate: SecurityGate) -> CatalogService:
    return CatalogService(repo, gate, max_items=3)


@pytest.fixture
def purchases(
    repo: SQLiteRepository,
    manager: SessionManager,
    gate: SecurityGate,
) -> PurchaseService:
    return PurchaseService(repo, manager, gate, ConfirmationGate(default_timeout=5.0))


@pytest.fixture
def router(gate: SecurityGate, manager: SessionManager, purchases: PurchaseService) -> InteractionRouter:
    return InteractionRouter(gate, manager, purchases)
