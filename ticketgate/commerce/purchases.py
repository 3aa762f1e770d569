"""Commerce layer — Purchase protocol.

``begin_purchase`` runs the confirmation protocol in front of session
creation:

    1. the item must exist, be active and be in stock
    2. an actor who already holds an OPEN session is redirected to it
    3. a two-action prompt is shown and the gate waits for the actor
    4. CANCELLED / EXPIRED only rewrite the prompt
    5. CONFIRMED re-reads the item, opens a session and records a PENDING
       sale whose amount is the price at that moment

Sale completion, cancellation and digital content retrieval are separate,
externally triggered operations.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from ticketgate.commerce.catalog import CatalogPublisher
from ticketgate.commerce.confirmation import ConfirmationGate, ConfirmationState
from ticketgate.exceptions import (
    AlreadyCompletedError,
    AlreadyHasSessionError,
    ContentUnavailableError,
    InvalidStateError,
    ItemNotFoundError,
    NotPurchasedError,
    OutOfStockError,
    ResourceError,
    SaleNotFoundError,
    TicketGateError,
)
from ticketgate.logging import get_logger
from ticketgate.platform.provider import PromptResponder
from ticketgate.security.gate import SecurityGate
from ticketgate.security.models import Actor, SecurityEventType
from ticketgate.sessions.manager import SessionManager
from ticketgate.store.models import CatalogItem, Sale, SaleStatus, Session
from ticketgate.store.repository import Repository

log = get_logger(__name__)

CONFIRM_PREFIX = "confirm_purchase"
CANCEL_PREFIX = "cancel_purchase"


@dataclass(frozen=True)
class PurchaseOutcome:
    state: ConfirmationState
    session: Session | None = None
    sale: Sale | None = None


@dataclass(frozen=True)
class DigitalContent:
    item_id: int
    item_name: str
    content: str


class PurchaseService:
    def __init__(
        self,
        repo: Repository,
        sessions: SessionManager,
        gate: SecurityGate,
        confirmations: ConfirmationGate,
        currency: str = "BRL",
        publisher: CatalogPublisher | None = None,
    ) -> None:
        self._repo = repo
        self._sessions = sessions
        self._gate = gate
        self._confirmations = confirmations
        self._currency = currency
        self._publisher = publisher

    @property
    def confirmations(self) -> ConfirmationGate:
        return self._confirmations

    async def _purchasable_item(self, item_id: int) -> CatalogItem:
        item = await self._repo.get_item(item_id)
        if item is None or not item.is_active:
            raise ItemNotFoundError(item_id)
        if item.stock == 0:
            raise OutOfStockError(item_id)
        return item

    # ---------------------------------------------------------------------------
    # Confirmation protocol
    # ---------------------------------------------------------------------------

    async def begin_purchase(
        self,
        actor: Actor,
        item_id: int,
        responder: PromptResponder,
        timeout: float | None = None,
    ) -> PurchaseOutcome:
        """Offer *item_id* to *actor* and act on the single resolution.

        Raises:
            ItemNotFoundError / OutOfStockError: before or after confirmation.
            AlreadyHasSessionError: the actor already holds (or raced into) an
                OPEN session; no sale is recorded.
            ResourceError: the prompt could not be shown or the session
                channel could not be provisioned.
        """
        item = await self._purchasable_item(item_id)

        existing = await self._sessions.get_open_session(actor.user_id)
        if existing is not None:
            raise AlreadyHasSessionError(actor.user_id, existing)

        request = self._confirmations.offer(actor.user_id, item_id, timeout)
        prompt = (
            f"Confirm purchase of {item.name} for {self._currency} {item.price:.2f}?\n"
            f"A private ticket will be opened to complete the payment."
        )
        try:
            await responder.show(
                prompt,
                [f"{CONFIRM_PREFIX}:{request.gate_id}", f"{CANCEL_PREFIX}:{request.gate_id}"],
            )
        except Exception as exc:
            self._confirmations.invalidate(request.gate_id)
            await self._confirmations.wait(request.gate_id)
            raise ResourceError("show_prompt", str(exc)) from exc

        state = await self._confirmations.wait(request.gate_id)
        if state == ConfirmationState.CANCELLED:
            await self._update_prompt(responder, "Purchase cancelled.")
            return PurchaseOutcome(state)
        if state == ConfirmationState.EXPIRED:
            await self._update_prompt(responder, "Confirmation expired. Select the product again to retry.")
            return PurchaseOutcome(state)

        try:
            item = await self._purchasable_item(item_id)
            amount = item.price
            session = await self._sessions.create_session(actor, item_id)
        except TicketGateError as exc:
            await self._update_prompt(responder, exc.user_message)
            raise

        sale = await self._repo.insert_sale(
            Sale(owner_id=actor.user_id, item_id=item_id, amount=amount, session_id=session.channel_id)
        )
        sale.item_name = item.name
        log.info(
            "purchase_initiated",
            sale_id=sale.sale_id,
            item_id=item_id,
            owner_id=actor.user_id,
            amount=str(amount),
        )
        await self._gate.auditor.record(
            SecurityEventType.PURCHASE_INITIATED,
            user_id=actor.user_id,
            sale_id=sale.sale_id,
            item_id=item_id,
            amount=str(amount),
            channel_id=session.channel_id,
        )
        await self._update_prompt(responder, f"Ticket created: <#{session.channel_id}>")
        return PurchaseOutcome(state, session=session, sale=sale)

    def resolve(self, gate_id: str, responder_id: str, decision: ConfirmationState) -> bool:
        return self._confirmations.resolve(gate_id, responder_id, decision)

    async def _update_prompt(self, responder: PromptResponder, content: str) -> None:
        try:
            await responder.update(content)
        except Exception as exc:
            log.warning("prompt_update_failed", error=str(exc))

    # ---------------------------------------------------------------------------
    # Sale transitions
    # ---------------------------------------------------------------------------

    async def complete_sale(
        self,
        sale_id: int,
        completed_by: str | None = None,
        payment_method: str | None = None,
        transaction_ref: str | None = None,
    ) -> Sale:
        """PENDING → COMPLETED.  A second call fails with ``AlreadyCompletedError``."""
        sale = await self._repo.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError(sale_id)

        performed = await self._repo.complete_sale_if_pending(
            sale_id, time.time(), payment_method, transaction_ref
        )
        if not performed:
            current = await self._repo.get_sale(sale_id) or sale
            if current.status == SaleStatus.COMPLETED:
                raise AlreadyCompletedError(sale_id)
            raise InvalidStateError("sale", sale_id, current.status.value, "complete")

        completed = await self._repo.get_sale(sale_id)
        assert completed is not None
        log.info("sale_completed", sale_id=sale_id, item_id=completed.item_id, amount=str(completed.amount))
        await self._gate.auditor.record(
            SecurityEventType.SALE_COMPLETED,
            user_id=completed.owner_id,
            sale_id=sale_id,
            item_id=completed.item_id,
            amount=str(completed.amount),
            payment_method=payment_method,
            completed_by=completed_by,
        )
        if self._publisher is not None:
            await self._publisher.refresh()
        return completed

    async def cancel_sale(self, sale_id: int, cancelled_by: str | None = None) -> Sale:
        sale = await self._repo.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError(sale_id)
        if not await self._repo.cancel_sale_if_pending(sale_id):
            current = await self._repo.get_sale(sale_id) or sale
            if current.status == SaleStatus.COMPLETED:
                raise AlreadyCompletedError(sale_id)
            raise InvalidStateError("sale", sale_id, current.status.value, "cancel")

        cancelled = await self._repo.get_sale(sale_id)
        assert cancelled is not None
        await self._gate.auditor.record(
            SecurityEventType.SALE_CANCELLED,
            user_id=cancelled.owner_id,
            sale_id=sale_id,
            cancelled_by=cancelled_by,
        )
        return cancelled

    # ---------------------------------------------------------------------------
    # Ownership
    # ---------------------------------------------------------------------------

    async def get_digital_content(self, item_id: int, user_id: str) -> DigitalContent:
        """Decrypt an item's payload for a user holding a COMPLETED sale of it.

        Raises:
            NotPurchasedError: no COMPLETED sale for exactly (user, item).
            ContentUnavailableError: the item carries no payload.
            DecryptionError: the stored envelope failed authentication.
        """
        if not await self._repo.has_completed_sale(user_id, item_id):
            raise NotPurchasedError(user_id, item_id)
        item = await self._repo.get_item(item_id)
        if item is None or not item.digital_payload:
            raise ContentUnavailableError(item_id)

        content = self._gate.decrypt(item.digital_payload)
        await self._gate.auditor.record(
            SecurityEventType.DIGITAL_CONTENT_ACCESSED,
            user_id=user_id,
            item_id=item_id,
        )
        return DigitalContent(item_id=item_id, item_name=item.name, content=content)

    async def user_purchases(self, user_id: str) -> list[Sale]:
        return await self._repo.list_user_sales(user_id)
