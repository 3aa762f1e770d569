"""Unit tests for the ConfirmationGate coordination module."""

from __future__ import annotations

import asyncio

import pytest

from ticketgate.commerce.confirmation import ConfirmationGate, ConfirmationState


@pytest.mark.unit
class TestConfirmationGate:
    async def test_confirm_wakes_waiter(self) -> None:
        gate = ConfirmationGate(default_timeout=5.0)
        request = gate.offer("u1", 7)

        async def _confirm() -> None:
            await asyncio.sleep(0.01)
            assert gate.resolve(request.gate_id, "u1", ConfirmationState.CONFIRMED)

        asyncio.create_task(_confirm())
        assert await gate.wait(request.gate_id) == ConfirmationState.CONFIRMED
        assert gate.pending_count == 0

    async def test_expiry_when_nobody_answers(self) -> None:
        gate = ConfirmationGate()
        request = gate.offer("u1", 7, timeout=0.02)
        assert await gate.wait(request.gate_id) == ConfirmationState.EXPIRED
        assert gate.resolve(request.gate_id, "u1", ConfirmationState.CONFIRMED) is False

    async def test_foreign_responder_is_ignored(self) -> None:
        gate = ConfirmationGate()
        request = gate.offer("u1", 7, timeout=0.05)
        assert gate.resolve(request.gate_id, "intruder", ConfirmationState.CONFIRMED) is False
        assert await gate.wait(request.gate_id) == ConfirmationState.EXPIRED

    async def test_first_resolution_wins(self) -> None:
        gate = ConfirmationGate()
        request = gate.offer("u1", 7)
        assert gate.resolve(request.gate_id, "u1", ConfirmationState.CANCELLED)
        assert not gate.resolve(request.gate_id, "u1", ConfirmationState.CONFIRMED)
        assert await gate.wait(request.gate_id) == ConfirmationState.CANCELLED

    async def test_invalidate_cancels(self) -> None:
        gate = ConfirmationGate()
        request = gate.offer("u1", 7)
        assert gate.invalidate(request.gate_id)
        assert await gate.wait(request.gate_id) == ConfirmationState.CANCELLED

    def test_only_terminal_decisions_resolve(self) -> None:
        gate = ConfirmationGate()
        request = gate.offer("u1", 7)
        with pytest.raises(ValueError):
            gate.resolve(request.gate_id, "u1", ConfirmationState.EXPIRED)

    async def test_unknown_gate(self) -> None:
        gate = ConfirmationGate()
        assert gate.resolve("missing", "u1", ConfirmationState.CONFIRMED) is False
        with pytest.raises(KeyError):
            await gate.wait("missing")

    def test_pending_filtered_by_actor(self) -> None:
        gate = ConfirmationGate()
        gate.offer("u1", 1)
        gate.offer("u2", 2)
        assert [r.item_id for r in gate.get_pending("u2")] == [2]
        assert len(gate.get_pending()) == 2
