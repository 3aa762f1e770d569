"""Unit tests — purchase confirmation protocol and sale transitions."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from ticketgate.commerce.confirmation import ConfirmationState
from ticketgate.commerce.purchases import PurchaseService
from ticketgate.exceptions import (
    AlreadyCompletedError,
    AlreadyHasSessionError,
    ContentUnavailableError,
    ErrorKind,
    InvalidStateError,
    ItemNotFoundError,
    NotPurchasedError,
    OutOfStockError,
    ResourceError,
    SaleNotFoundError,
)
from ticketgate.platform.memory import MemoryPromptResponder
from ticketgate.security.models import SecurityEventType
from ticketgate.store.models import SaleStatus


async def _gate_id(responder: MemoryPromptResponder) -> str:
    await asyncio.wait_for(responder.visible.wait(), timeout=2)
    _, actions = responder.shown[-1]
    return actions[0].split(":", 1)[1]


async def _buy(purchases: PurchaseService, actor, item_id: int):
    responder = MemoryPromptResponder()
    task = asyncio.create_task(purchases.begin_purchase(actor, item_id, responder))
    gate_id = await _gate_id(responder)
    assert purchases.resolve(gate_id, actor.user_id, ConfirmationState.CONFIRMED)
    return await task, responder


@pytest.mark.unit
class TestBeginPurchase:
    async def test_confirm_creates_session_and_pending_sale(
        self, purchases: PurchaseService, catalog, repo, make_actor
    ) -> None:
        item = await catalog.create_item("Pro", "49.90")
        outcome, responder = await _buy(purchases, make_actor("u1"), item.item_id)

        assert outcome.state == ConfirmationState.CONFIRMED
        assert outcome.session is not None and outcome.session.item_id == item.item_id
        assert outcome.sale.status == SaleStatus.PENDING
        assert outcome.sale.amount == Decimal("49.90")
        assert outcome.sale.session_id == outcome.session.channel_id
        assert responder.last_update == f"Ticket created: <#{outcome.session.channel_id}>"
        events = await repo.list_security_events(SecurityEventType.PURCHASE_INITIATED.value)
        assert len(events) == 1

    async def test_prompt_offers_both_actions(self, purchases: PurchaseService, catalog, make_actor) -> None:
        item = await catalog.create_item("Pro", "10")
        responder = MemoryPromptResponder()
        task = asyncio.create_task(purchases.begin_purchase(make_actor("u1"), item.item_id, responder))
        gate_id = await _gate_id(responder)
        _, actions = responder.shown[-1]
        assert actions == [f"confirm_purchase:{gate_id}", f"cancel_purchase:{gate_id}"]
        purchases.resolve(gate_id, "u1", ConfirmationState.CANCELLED)
        await task

    async def test_cancel_creates_nothing(self, purchases: PurchaseService, catalog, repo, provider, make_actor) -> None:
        item = await catalog.create_item("Pro", "10")
        responder = MemoryPromptResponder()
        task = asyncio.create_task(purchases.begin_purchase(make_actor("u1"), item.item_id, responder))
        purchases.resolve(await _gate_id(responder), "u1", ConfirmationState.CANCELLED)

        outcome = await task
        assert outcome.state == ConfirmationState.CANCELLED
        assert outcome.session is None and outcome.sale is None
        assert provider.channels == {}
        assert await repo.list_user_sales("u1") == []
        assert responder.last_update == "Purchase cancelled."

    async def test_expiry_creates_nothing(self, purchases: PurchaseService, catalog, repo, provider, make_actor) -> None:
        item = await catalog.create_item("Pro", "10")
        responder = MemoryPromptResponder()
        outcome = await purchases.begin_purchase(make_actor("u1"), item.item_id, responder, timeout=0.02)

        assert outcome.state == ConfirmationState.EXPIRED
        assert provider.channels == {}
        assert await repo.list_user_sales("u1") == []
        assert purchases.confirmations.pending_count == 0

    async def test_foreign_confirmation_is_ignored(self, purchases: PurchaseService, catalog, make_actor) -> None:
        item = await catalog.create_item("Pro", "10")
        responder = MemoryPromptResponder()
        task = asyncio.create_task(
            purchases.begin_purchase(make_actor("u1"), item.item_id, responder, timeout=0.1)
        )
        gate_id = await _gate_id(responder)
        assert purchases.resolve(gate_id, "u2", ConfirmationState.CONFIRMED) is False
        assert (await task).state == ConfirmationState.EXPIRED

    async def test_existing_session_short_circuits(self, purchases: PurchaseService, catalog, manager, make_actor) -> None:
        item = await catalog.create_item("Pro", "10")
        existing = await manager.create_session(make_actor("u1"))
        responder = MemoryPromptResponder()
        with pytest.raises(AlreadyHasSessionError) as exc_info:
            await purchases.begin_purchase(make_actor("u1"), item.item_id, responder)
        assert exc_info.value.existing.channel_id == existing.channel_id
        assert responder.shown == []

    async def test_unavailable_items(self, purchases: PurchaseService, catalog, make_actor) -> None:
        sold_out = await catalog.create_item("Rare", "10", stock=0)
        gone = await catalog.create_item("Old", "10")
        await catalog.delete_item(gone.item_id)
        responder = MemoryPromptResponder()

        with pytest.raises(OutOfStockError):
            await purchases.begin_purchase(make_actor("u1"), sold_out.item_id, responder)
        with pytest.raises(ItemNotFoundError):
            await purchases.begin_purchase(make_actor("u1"), gone.item_id, responder)
        with pytest.raises(ItemNotFoundError):
            await purchases.begin_purchase(make_actor("u1"), 9999, responder)

    async def test_price_snapshot_taken_at_confirmation(
        self, purchases: PurchaseService, catalog, make_actor
    ) -> None:
        item = await catalog.create_item("Pro", "10")
        responder = MemoryPromptResponder()
        task = asyncio.create_task(purchases.begin_purchase(make_actor("u1"), item.item_id, responder))
        gate_id = await _gate_id(responder)
        await catalog.update_item(item.item_id, price="15")
        purchases.resolve(gate_id, "u1", ConfirmationState.CONFIRMED)

        outcome = await task
        assert outcome.sale.amount == Decimal("15.00")

    async def test_prompt_failure_raises_resource_error(self, purchases: PurchaseService, catalog, make_actor) -> None:
        class BrokenResponder(MemoryPromptResponder):
            async def show(self, content: str, actions: list[str]) -> None:
                raise RuntimeError("message deleted")

        item = await catalog.create_item("Pro", "10")
        with pytest.raises(ResourceError):
            await purchases.begin_purchase(make_actor("u1"), item.item_id, BrokenResponder())
        assert purchases.confirmations.pending_count == 0

    async def test_channel_failure_after_confirm_records_no_sale(
        self, purchases: PurchaseService, catalog, repo, provider, make_actor
    ) -> None:
        item = await catalog.create_item("Pro", "10")
        provider.fail_on("create_channel")
        responder = MemoryPromptResponder()
        task = asyncio.create_task(purchases.begin_purchase(make_actor("u1"), item.item_id, responder))
        purchases.resolve(await _gate_id(responder), "u1", ConfirmationState.CONFIRMED)

        with pytest.raises(ResourceError):
            await task
        assert await repo.list_user_sales("u1") == []


@pytest.mark.unit
class TestSaleTransitions:
    async def test_double_complete(self, purchases: PurchaseService, catalog, repo, make_actor) -> None:
        item = await catalog.create_item("Pro", "10", stock=2)
        outcome, _ = await _buy(purchases, make_actor("u1"), item.item_id)
        sale_id = outcome.sale.sale_id

        completed = await purchases.complete_sale(sale_id, completed_by="admin-1", payment_method="pix")
        assert completed.status == SaleStatus.COMPLETED
        with pytest.raises(AlreadyCompletedError) as exc_info:
            await purchases.complete_sale(sale_id)
        assert exc_info.value.kind == ErrorKind.ALREADY_COMPLETED

        refreshed = await repo.get_item(item.item_id)
        assert refreshed.stock == 1
        assert refreshed.sales_count == 1

    async def test_concurrent_complete_applies_once(self, purchases: PurchaseService, catalog, repo, make_actor) -> None:
        item = await catalog.create_item("Pro", "10", stock=5)
        outcome, _ = await _buy(purchases, make_actor("u1"), item.item_id)

        results = await asyncio.gather(
            *(purchases.complete_sale(outcome.sale.sale_id) for _ in range(4)),
            return_exceptions=True,
        )
        assert sum(not isinstance(r, BaseException) for r in results) == 1
        assert sum(isinstance(r, AlreadyCompletedError) for r in results) == 3
        assert (await repo.get_item(item.item_id)).stock == 4

    async def test_cancel_then_complete(self, purchases: PurchaseService, catalog, make_actor) -> None:
        item = await catalog.create_item("Pro", "10")
        outcome, _ = await _buy(purchases, make_actor("u1"), item.item_id)
        await purchases.cancel_sale(outcome.sale.sale_id, cancelled_by="admin-1")
        with pytest.raises(InvalidStateError):
            await purchases.complete_sale(outcome.sale.sale_id)

    async def test_unknown_sale(self, purchases: PurchaseService) -> None:
        with pytest.raises(SaleNotFoundError):
            await purchases.complete_sale(404)


@pytest.mark.unit
class TestDigitalContent:
    async def test_only_buyer_of_that_item_gets_content(
        self, purchases: PurchaseService, catalog, repo, make_actor
    ) -> None:
        x = await catalog.create_item("X", "10", digital_content="KEY-X")
        y = await catalog.create_item("Y", "10", digital_content="KEY-Y")
        outcome, _ = await _buy(purchases, make_actor("u1"), x.item_id)

        with pytest.raises(NotPurchasedError):
            await purchases.get_digital_content(x.item_id, "u1")

        await purchases.complete_sale(outcome.sale.sale_id)
        content = await purchases.get_digital_content(x.item_id, "u1")
        assert content.content == "KEY-X"

        with pytest.raises(NotPurchasedError):
            await purchases.get_digital_content(y.item_id, "u1")
        with pytest.raises(NotPurchasedError):
            await purchases.get_digital_content(x.item_id, "u2")
        events = await repo.list_security_events(SecurityEventType.DIGITAL_CONTENT_ACCESSED.value)
        assert len(events) == 1

    async def test_item_without_payload(self, purchases: PurchaseService, catalog, make_actor) -> None:
        item = await catalog.create_item("Service", "10")
        outcome, _ = await _buy(purchases, make_actor("u1"), item.item_id)
        await purchases.complete_sale(outcome.sale.sale_id)
        with pytest.raises(ContentUnavailableError):
            await purchases.get_digital_content(item.item_id, "u1")
