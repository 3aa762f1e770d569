"""Interactions — Closed action set and exhaustive dispatch.

Every inbound trigger (slash command or component press) is identified by an
``ActionKind``.  Component IDs carry an optional argument after a colon::

    buy_product:7           → (SELECT_PRODUCT, "7")
    confirm_purchase:<gate> → (CONFIRM_PURCHASE, "<gate>")

The router's handler table must cover every ``ActionKind``; a missing entry
fails at construction, not at the first press of an unhandled button.

Pipeline for each interaction::

    integrity halt check → SecurityGate.admit → action limiter → handler

``TicketGateError`` becomes an ``InteractionReply`` carrying the error kind;
anything else is recorded as ``INTERACTION_ERROR`` and answered generically.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from ticketgate.commerce.confirmation import ConfirmationState
from ticketgate.commerce.purchases import PurchaseService
from ticketgate.exceptions import ErrorKind, TicketGateError, UnknownActionError, ValidationError
from ticketgate.logging import bind_interaction_context, clear_interaction_context, get_logger
from ticketgate.platform.provider import PromptResponder
from ticketgate.security.gate import SecurityGate
from ticketgate.security.models import Actor, SecurityEventType
from ticketgate.sessions.manager import SessionManager

log = get_logger(__name__)

GENERIC_FAILURE = "Something went wrong while processing that. Please try again."


class ActionKind(str, Enum):
    OPEN_TICKET = "create_ticket"
    CLOSE_TICKET = "ticket_close"
    CLAIM_TICKET = "ticket_claim"
    TICKET_TRANSCRIPT = "ticket_transcript"
    SELECT_PRODUCT = "buy_product"
    CONFIRM_PURCHASE = "confirm_purchase"
    CANCEL_PURCHASE = "cancel_purchase"
    MY_TICKETS = "mytickets"
    MY_PURCHASES = "mypurchases"
    DOWNLOAD_CONTENT = "download"

    @classmethod
    def parse(cls, custom_id: str) -> tuple["ActionKind", str | None]:
        name, sep, arg = custom_id.partition(":")
        try:
            kind = cls(name)
        except ValueError:
            raise UnknownActionError(custom_id) from None
        return kind, (arg if sep else None)

    @property
    def limiter(self) -> str | None:
        """Named limiter consumed on top of the admission check, if any."""
        return _ACTION_LIMITERS.get(self)


_ACTION_LIMITERS: dict[ActionKind, str] = {
    ActionKind.OPEN_TICKET: "tickets",
    ActionKind.MY_TICKETS: "commands",
    ActionKind.MY_PURCHASES: "commands",
    ActionKind.DOWNLOAD_CONTENT: "commands",
}


@dataclass
class Interaction:
    actor: Actor
    custom_id: str
    channel_id: str | None = None
    responder: PromptResponder | None = None
    interaction_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass
class InteractionReply:
    content: str
    ephemeral: bool = True
    error_kind: ErrorKind | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error_kind is None


Handler = Callable[[Interaction, "str | None"], Awaitable[InteractionReply]]


class InteractionRouter:
    def __init__(
        self,
        gate: SecurityGate,
        sessions: SessionManager,
        purchases: PurchaseService,
    ) -> None:
        self._gate = gate
        self._sessions = sessions
        self._purchases = purchases
        self._handlers: dict[ActionKind, Handler] = {
            ActionKind.OPEN_TICKET: self._open_ticket,
            ActionKind.CLOSE_TICKET: self._close_ticket,
            ActionKind.CLAIM_TICKET: self._claim_ticket,
            ActionKind.TICKET_TRANSCRIPT: self._transcript,
            ActionKind.SELECT_PRODUCT: self._select_product,
            ActionKind.CONFIRM_PURCHASE: self._confirm_purchase,
            ActionKind.CANCEL_PURCHASE: self._cancel_purchase,
            ActionKind.MY_TICKETS: self._my_tickets,
            ActionKind.MY_PURCHASES: self._my_purchases,
            ActionKind.DOWNLOAD_CONTENT: self._download,
        }
        missing = set(ActionKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for actions: {sorted(k.value for k in missing)}")

    async def dispatch(self, interaction: Interaction) -> InteractionReply:
        actor = interaction.actor
        bind_interaction_context(
            user_id=actor.user_id,
            session_id=interaction.channel_id,
            interaction_id=interaction.interaction_id,
        )
        try:
            self._gate.ensure_not_halted()
            await self._gate.admit(actor)
            kind, arg = ActionKind.parse(interaction.custom_id)
            if kind.limiter is not None:
                await self._gate.enforce_rate_limit(actor.user_id, kind.limiter)
            log.debug("interaction_dispatch", action=kind.value)
            return await self._handlers[kind](interaction, arg)
        except TicketGateError as exc:
            log.info("interaction_rejected", kind=exc.kind.value, error=exc.message)
            return InteractionReply(exc.user_message, error_kind=exc.kind)
        except Exception as exc:
            log.exception("interaction_failed", custom_id=interaction.custom_id)
            await self._gate.auditor.record(
                SecurityEventType.INTERACTION_ERROR,
                user_id=actor.user_id,
                custom_id=interaction.custom_id,
                error=str(exc),
            )
            return InteractionReply(GENERIC_FAILURE, error_kind=ErrorKind.INTERNAL)
        finally:
            clear_interaction_context()

    # ---------------------------------------------------------------------------
    # Argument helpers
    # ---------------------------------------------------------------------------

    @staticmethod
    def _channel(interaction: Interaction, arg: str | None) -> str:
        channel_id = arg or interaction.channel_id
        if not channel_id:
            raise ValidationError("channel_id", "This action must be used inside a ticket channel.")
        return channel_id

    @staticmethod
    def _item_id(arg: str | None) -> int:
        try:
            return int(arg or "")
        except ValueError:
            raise ValidationError("item_id", "Invalid product identifier.") from None

    @staticmethod
    def _gate_id(arg: str | None) -> str:
        if not arg:
            raise ValidationError("gate_id", "Invalid confirmation identifier.")
        return arg

    # ---------------------------------------------------------------------------
    # Sessions
    # ---------------------------------------------------------------------------

    async def _open_ticket(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        session = await self._sessions.create_session(interaction.actor)
        return InteractionReply(
            f"Ticket created: <#{session.channel_id}>",
            data={"channel_id": session.channel_id},
        )

    async def _close_ticket(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        channel_id = self._channel(interaction, arg)
        result = await self._sessions.close_session(channel_id, interaction.actor, "closed by user")
        if not result.performed:
            return InteractionReply("This ticket is already closed.")
        return InteractionReply(
            "Ticket closed. This channel will be deleted shortly.",
            ephemeral=False,
            data={"channel_id": channel_id},
        )

    async def _claim_ticket(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        channel_id = self._channel(interaction, arg)
        await self._sessions.claim_session(channel_id, interaction.actor)
        return InteractionReply(f"Ticket claimed by <@{interaction.actor.user_id}>.", ephemeral=False)

    async def _transcript(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        channel_id = self._channel(interaction, arg)
        transcript = await self._sessions.generate_transcript(channel_id, interaction.actor)
        return InteractionReply(
            f"Transcript generated ({transcript.message_count} messages).",
            data={
                "text": transcript.text,
                "path": str(transcript.path) if transcript.path else None,
            },
        )

    async def _my_tickets(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        history = await self._sessions.user_history(interaction.actor.user_id)
        if not history:
            return InteractionReply("You have no tickets yet.")
        lines = [
            f"<#{s.channel_id}> {s.status.value}" + (f" ({s.close_reason})" if s.close_reason else "")
            for s in history
        ]
        return InteractionReply("\n".join(lines), data={"count": len(history)})

    # ---------------------------------------------------------------------------
    # Commerce
    # ---------------------------------------------------------------------------

    async def _select_product(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        item_id = self._item_id(arg)
        if interaction.responder is None:
            raise ValidationError("responder", "This action needs an interactive prompt.")
        outcome = await self._purchases.begin_purchase(interaction.actor, item_id, interaction.responder)
        if outcome.state != ConfirmationState.CONFIRMED:
            return InteractionReply(f"Purchase {outcome.state.value}.", data={"state": outcome.state.value})
        assert outcome.session is not None and outcome.sale is not None
        return InteractionReply(
            f"Ticket created: <#{outcome.session.channel_id}>",
            data={
                "state": outcome.state.value,
                "channel_id": outcome.session.channel_id,
                "sale_id": outcome.sale.sale_id,
            },
        )

    async def _resolve(
        self, interaction: Interaction, arg: str | None, decision: ConfirmationState
    ) -> InteractionReply:
        applied = self._purchases.resolve(self._gate_id(arg), interaction.actor.user_id, decision)
        if not applied:
            return InteractionReply("This confirmation is not yours or is no longer pending.")
        return InteractionReply(f"Purchase {decision.value}.", data={"state": decision.value})

    async def _confirm_purchase(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        return await self._resolve(interaction, arg, ConfirmationState.CONFIRMED)

    async def _cancel_purchase(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        return await self._resolve(interaction, arg, ConfirmationState.CANCELLED)

    async def _my_purchases(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        sales = await self._purchases.user_purchases(interaction.actor.user_id)
        if not sales:
            return InteractionReply("You have no purchases yet.")
        lines = [
            f"#{s.sale_id} {s.item_name or s.item_id}: {s.amount:.2f} ({s.status.value})"
            for s in sales
        ]
        return InteractionReply("\n".join(lines), data={"count": len(sales)})

    async def _download(self, interaction: Interaction, arg: str | None) -> InteractionReply:
        item_id = self._item_id(arg)
        content = await self._purchases.get_digital_content(item_id, interaction.actor.user_id)
        return InteractionReply(
            f"{content.item_name}:\n{content.content}",
            data={"item_id": item_id},
        )
