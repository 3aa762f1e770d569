"""Commerce layer — Purchase confirmation gate.

The ConfirmationGate coordinates a single-responder confirm/cancel decision
between the purchase flow (which waits) and the interaction router (which
signals when a button is pressed).  Each pending confirmation is tracked by
an ``asyncio.Event`` that the waiter awaits with a deadline.

State machine::

    OFFERED ──confirm (original actor)──► CONFIRMED
            ──cancel  (original actor)──► CANCELLED
            ──prompt invalidated────────► CANCELLED
            ──deadline passes───────────► EXPIRED

Exactly one terminal outcome is recorded per gate: the first resolution
wins, later ones are ignored, and expiry only applies if nothing else
resolved the gate first.

Usage (purchase side)::

    request = gate.offer(actor_id, item_id)
    outcome = await gate.wait(request.gate_id)

Usage (router side)::

    gate.resolve(gate_id, responder_id, ConfirmationState.CONFIRMED)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ticketgate.logging import get_logger

log = get_logger(__name__)


class ConfirmationState(str, Enum):
    OFFERED = "offered"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not ConfirmationState.OFFERED


@dataclass
class ConfirmationRequest:
    """A confirmation prompt awaiting its one responder."""

    gate_id: str
    actor_id: str
    item_id: int
    timeout: float
    offered_at: float = field(default_factory=time.time)

    @property
    def deadline(self) -> float:
        return self.offered_at + self.timeout

    def to_dict(self) -> dict[str, Any]:
        return {
            "gate_id": self.gate_id,
            "actor_id": self.actor_id,
            "item_id": self.item_id,
            "offered_at": self.offered_at,
            "deadline": self.deadline,
        }


class _PendingEntry:
    __slots__ = ("request", "event", "outcome")

    def __init__(self, request: ConfirmationRequest) -> None:
        self.request = request
        self.event = asyncio.Event()
        self.outcome: ConfirmationState | None = None


class ConfirmationGate:
    """Registry of pending confirmations.

    Single-event-loop use only, like every other asyncio primitive here.
    """

    def __init__(self, default_timeout: float = 60.0) -> None:
        self._default_timeout = default_timeout
        self._pending: dict[str, _PendingEntry] = {}

    # ------------------------------------------------------------------
    # Purchase side
    # ------------------------------------------------------------------

    def offer(self, actor_id: str, item_id: int, timeout: float | None = None) -> ConfirmationRequest:
        request = ConfirmationRequest(
            gate_id=uuid.uuid4().hex,
            actor_id=actor_id,
            item_id=item_id,
            timeout=timeout if timeout is not None else self._default_timeout,
        )
        self._pending[request.gate_id] = _PendingEntry(request)
        log.debug("confirmation_offered", gate_id=request.gate_id, actor_id=actor_id, item_id=item_id)
        return request

    async def wait(self, gate_id: str) -> ConfirmationState:
        """Block until the gate resolves or its deadline passes.

        Returns the single terminal outcome.  The gate is discarded afterwards.
        """
        entry = self._pending.get(gate_id)
        if entry is None:
            raise KeyError(gate_id)
        remaining = max(0.0, entry.request.deadline - time.time())
        try:
            await asyncio.wait_for(entry.event.wait(), timeout=remaining)
        except asyncio.TimeoutError:
            if entry.outcome is None:
                entry.outcome = ConfirmationState.EXPIRED
                log.info("confirmation_expired", gate_id=gate_id, actor_id=entry.request.actor_id)
        finally:
            self._pending.pop(gate_id, None)

        assert entry.outcome is not None
        return entry.outcome

    # ------------------------------------------------------------------
    # Router side
    # ------------------------------------------------------------------

    def resolve(self, gate_id: str, responder_id: str, decision: ConfirmationState) -> bool:
        """Apply *decision* if *responder_id* is the original actor.

        Returns False for unknown or already-resolved gates and for any
        other responder; those attempts are ignored, not errors.
        """
        if decision not in (ConfirmationState.CONFIRMED, ConfirmationState.CANCELLED):
            raise ValueError(f"{decision} is not a resolving decision")
        entry = self._pending.get(gate_id)
        if entry is None or entry.outcome is not None:
            return False
        if responder_id != entry.request.actor_id:
            log.debug("confirmation_foreign_responder", gate_id=gate_id, responder_id=responder_id)
            return False
        entry.outcome = decision
        entry.event.set()
        log.info("confirmation_resolved", gate_id=gate_id, outcome=decision.value)
        return True

    def invalidate(self, gate_id: str) -> bool:
        """The prompt went away (message deleted): resolve as CANCELLED."""
        entry = self._pending.get(gate_id)
        if entry is None or entry.outcome is not None:
            return False
        entry.outcome = ConfirmationState.CANCELLED
        entry.event.set()
        log.info("confirmation_invalidated", gate_id=gate_id)
        return True

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get_pending(self, actor_id: str | None = None) -> list[ConfirmationRequest]:
        if actor_id is None:
            return [e.request for e in self._pending.values()]
        return [e.request for e in self._pending.values() if e.request.actor_id == actor_id]

    @property
    def pending_count(self) -> int:
        return len(self._pending)
