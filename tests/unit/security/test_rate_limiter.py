"""Unit tests — FixedWindowRateLimiter."""

from __future__ import annotations

import asyncio

import pytest

from ticketgate.security.rate_limiter import FixedWindowRateLimiter


@pytest.mark.unit
class TestFixedWindow:
    async def test_sixth_command_in_window_is_rejected(self, clock) -> None:
        limiter = FixedWindowRateLimiter("commands", points=5, window_seconds=60, clock=clock)
        for _ in range(5):
            assert (await limiter.consume("u1")).allowed

        decision = await limiter.consume("u1")
        assert decision.allowed is False
        assert decision.remaining == 0
        assert 1 <= decision.reset_seconds <= 60

    async def test_window_resets_after_expiry(self, clock) -> None:
        limiter = FixedWindowRateLimiter("commands", points=5, window_seconds=60, clock=clock)
        for _ in range(6):
            await limiter.consume("u1")

        clock.advance(60)
        decision = await limiter.consume("u1")
        assert decision.allowed is True
        assert decision.remaining == 4

    async def test_subjects_are_independent(self, clock) -> None:
        limiter = FixedWindowRateLimiter("tickets", points=1, window_seconds=300, clock=clock)
        assert (await limiter.consume("a")).allowed
        assert not (await limiter.consume("a")).allowed
        assert (await limiter.consume("b")).allowed

    async def test_reset_seconds_counts_down(self, clock) -> None:
        limiter = FixedWindowRateLimiter("tickets", points=1, window_seconds=300, clock=clock)
        await limiter.consume("a")
        clock.advance(120.5)
        decision = await limiter.consume("a")
        assert decision.reset_seconds == 180

    async def test_concurrent_consumers_never_overspend(self, clock) -> None:
        limiter = FixedWindowRateLimiter("commands", points=5, window_seconds=60, clock=clock)
        decisions = await asyncio.gather(*(limiter.consume("u1") for _ in range(20)))
        assert sum(d.allowed for d in decisions) == 5

    async def test_reset_clears_subject(self, clock) -> None:
        limiter = FixedWindowRateLimiter("tickets", points=1, window_seconds=300, clock=clock)
        await limiter.consume("a")
        limiter.reset("a")
        assert (await limiter.consume("a")).allowed
        limiter.reset()
        assert limiter.tracked_subjects() == 0
