"""Unit tests — SecurityGate admission, blacklist and self-test."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from ticketgate.exceptions import (
    BlacklistedError,
    ErrorKind,
    IntegrityViolationError,
    NonHumanActorError,
    NotAdminError,
    RateLimitedError,
)
from ticketgate.security.gate import SecurityGate
from ticketgate.security.integrity import IntegrityMonitor
from ticketgate.security.models import SecurityEventType


async def _event_types(repo) -> list[str]:
    return [e.event_type for e in await repo.list_security_events(limit=500)]


@pytest.mark.unit
class TestAdmission:
    async def test_regular_user_is_admitted(self, gate: SecurityGate, make_actor) -> None:
        result = await gate.validate_actor(make_actor())
        assert result.admitted
        assert result.flags == []

    async def test_blacklisted_user_denied_and_logged(self, gate: SecurityGate, repo, make_actor) -> None:
        await gate.blacklist("user-1", "spam", actor_id="admin-1")

        result = await gate.validate_actor(make_actor("user-1"))
        assert not result.admitted
        assert result.reason == ErrorKind.BLACKLISTED
        assert SecurityEventType.BLACKLISTED_USER_ATTEMPT.value in await _event_types(repo)

        with pytest.raises(BlacklistedError):
            await gate.admit(make_actor("user-1"))

    async def test_bot_accounts_are_rejected(self, gate: SecurityGate, repo, make_actor) -> None:
        with pytest.raises(NonHumanActorError):
            await gate.admit(make_actor("bot-9", is_bot=True))
        assert SecurityEventType.BOT_INTERACTION_ATTEMPT.value in await _event_types(repo)

    async def test_heuristics_flag_but_admit(self, gate: SecurityGate, repo, make_actor) -> None:
        actor = make_actor("fresh", avatar=None, created_at=time.time() - 3600)
        result = await gate.validate_actor(actor)

        assert result.admitted
        assert SecurityEventType.NEW_ACCOUNT_INTERACTION in result.flags
        assert SecurityEventType.DEFAULT_AVATAR_USER in result.flags
        types = await _event_types(repo)
        assert SecurityEventType.NEW_ACCOUNT_INTERACTION.value in types
        assert SecurityEventType.DEFAULT_AVATAR_USER.value in types

    async def test_interactions_limiter_denies(self, gate: SecurityGate, repo, make_actor) -> None:
        actor = make_actor()
        for _ in range(100):
            await gate.admit(actor)
        with pytest.raises(RateLimitedError) as exc_info:
            await gate.admit(actor)
        assert exc_info.value.kind == ErrorKind.RATE_LIMITED
        assert SecurityEventType.RATE_LIMIT_EXCEEDED.value in await _event_types(repo)


@pytest.mark.unit
class TestNamedLimiters:
    async def test_commands_limiter_five_per_minute(self, gate: SecurityGate, repo, clock) -> None:
        for _ in range(5):
            await gate.enforce_rate_limit("u1", "commands")
        with pytest.raises(RateLimitedError):
            await gate.enforce_rate_limit("u1", "commands")
        assert SecurityEventType.RATE_LIMIT_HIT.value in await _event_types(repo)

        clock.advance(60)
        await gate.enforce_rate_limit("u1", "commands")

    async def test_unknown_limiter_always_allows(self, gate: SecurityGate) -> None:
        decision = await gate.check_rate_limit("u1", "does-not-exist")
        assert decision.allowed


@pytest.mark.unit
class TestBlacklistAdministration:
    async def test_blacklist_is_idempotent_and_persisted(self, gate: SecurityGate, repo) -> None:
        assert await gate.blacklist("u2", "abuse") is True
        assert await gate.blacklist("u2", "abuse") is False
        assert "u2" in await repo.list_blacklisted()

        assert await gate.unblacklist("u2") is True
        assert not gate.context.is_blacklisted("u2")
        assert "u2" not in await repo.list_blacklisted()

    async def test_persisted_blacklist_survives_restart(self, gate: SecurityGate, repo, limiters) -> None:
        from ticketgate.security.context import SecurityContext

        await gate.blacklist("u3", "fraud")
        context = SecurityContext(["admin-1"], limiters, repo=repo)
        await context.start()
        assert context.is_blacklisted("u3")

    def test_require_admin(self, gate: SecurityGate) -> None:
        gate.require_admin("admin-1")
        with pytest.raises(NotAdminError):
            gate.require_admin("user-1")

    async def test_member_activity_is_recorded(self, gate: SecurityGate, repo) -> None:
        await gate.record_member_activity("u4", "joined", guild="g1")
        events = await repo.list_security_events(SecurityEventType.USER_ACTIVITY.value)
        assert len(events) == 1
        assert events[0].details["activity"] == "joined"


@pytest.mark.unit
class TestIntegrityHalt:
    def test_digest_tracks_file_content(self, tmp_path: Path) -> None:
        (tmp_path / "core.py").write_text("x = 1\n")
        before = SecurityGate.compute_integrity_digest([tmp_path])
        assert before == SecurityGate.compute_integrity_digest([tmp_path])
        (tmp_path / "core.py").write_text("x = 2\n")
        assert SecurityGate.compute_integrity_digest([tmp_path]) != before

    async def test_violation_halts_gate(self, gate: SecurityGate, repo, tmp_path: Path) -> None:
        code = tmp_path / "code"
        code.mkdir()
        (code / "core.py").write_text("x = 1\n")
        monitor = IntegrityMonitor([code], interval_seconds=0, on_violation=gate.handle_integrity_violation)
        monitor.capture_baseline()
        gate._monitor = monitor
        halted: list[bool] = []
        gate.on_halt(lambda: halted.append(True))

        gate.ensure_not_halted()
        (code / "core.py").write_text("x = 2\n")
        assert await monitor.check() is False
        assert await monitor.check() is False

        assert halted == [True]
        with pytest.raises(IntegrityViolationError):
            gate.ensure_not_halted()
        types = await _event_types(repo)
        assert types.count(SecurityEventType.BOT_INTEGRITY_VIOLATION.value) == 1

    async def test_verify_integrity_mismatch_halts(self, gate: SecurityGate, repo, tmp_path: Path) -> None:
        (tmp_path / "core.py").write_text("x = 1\n")
        monitor = IntegrityMonitor([tmp_path], interval_seconds=0, on_violation=gate.handle_integrity_violation)
        await monitor.start()
        gate._monitor = monitor
        halted: list[bool] = []
        gate.on_halt(lambda: halted.append(True))

        assert await gate.verify_integrity() is True
        (tmp_path / "core.py").write_text("x = 2\n")
        assert await gate.verify_integrity() is False
        assert await gate.verify_integrity() is False

        assert gate.halted
        assert halted == [True]
        types = await _event_types(repo)
        assert types.count(SecurityEventType.BOT_INTEGRITY_VIOLATION.value) == 1


@pytest.mark.unit
class TestSelfTest:
    async def test_all_checks_pass(self, gate: SecurityGate) -> None:
        checks = {c.name: c for c in await gate.self_test()}
        assert set(checks) == {"encryption", "signed_tokens", "integrity", "rate_limiters"}
        assert all(c.passed for c in checks.values())
