"""Unit tests — SQLiteRepository conditional writes and queries."""

from __future__ import annotations

import time
from decimal import Decimal

import pytest

from ticketgate.exceptions import AlreadyHasSessionError
from ticketgate.store.models import CatalogItem, Sale, SaleStatus, SecurityEvent, Session, SessionStatus
from ticketgate.store.sqlite import SQLiteRepository


async def _item(repo: SQLiteRepository, stock: int = -1, price: str = "10.00") -> CatalogItem:
    return await repo.insert_item(CatalogItem(name="Widget", price=Decimal(price), stock=stock))


@pytest.mark.unit
class TestSessions:
    async def test_second_open_session_for_owner_is_rejected(self, repo: SQLiteRepository) -> None:
        await repo.insert_session(Session(channel_id="c1", owner_id="u1"))
        with pytest.raises(AlreadyHasSessionError) as exc_info:
            await repo.insert_session(Session(channel_id="c2", owner_id="u1"))
        assert exc_info.value.existing is not None
        assert exc_info.value.existing.channel_id == "c1"

    async def test_new_session_allowed_after_close(self, repo: SQLiteRepository) -> None:
        await repo.insert_session(Session(channel_id="c1", owner_id="u1"))
        assert await repo.close_session_if_open("c1", "u1", "done", time.time())
        await repo.insert_session(Session(channel_id="c2", owner_id="u1"))
        assert (await repo.get_open_session("u1")).channel_id == "c2"

    async def test_close_is_conditional(self, repo: SQLiteRepository) -> None:
        await repo.insert_session(Session(channel_id="c1", owner_id="u1"))
        assert await repo.close_session_if_open("c1", "u1", "first", time.time()) is True
        assert await repo.close_session_if_open("c1", "system", "second", time.time()) is False

        session = await repo.get_session("c1")
        assert session.status == SessionStatus.CLOSED
        assert session.close_reason == "first"

    async def test_stats(self, repo: SQLiteRepository) -> None:
        await repo.insert_session(Session(channel_id="c1", owner_id="u1", created_at=100.0))
        await repo.insert_session(Session(channel_id="c2", owner_id="u2"))
        await repo.close_session_if_open("c1", "u1", "done", time.time())

        stats = await repo.session_stats(since=time.time() - 3600)
        assert (stats.total, stats.open, stats.closed, stats.created_today) == (2, 1, 1, 1)


@pytest.mark.unit
class TestSales:
    async def test_complete_once_updates_counters_once(self, repo: SQLiteRepository) -> None:
        item = await _item(repo, stock=3)
        await repo.upsert_user("u1", "User One", None)
        sale = await repo.insert_sale(Sale(owner_id="u1", item_id=item.item_id, amount=item.price))

        assert await repo.complete_sale_if_pending(sale.sale_id, time.time(), "pix", "tx-1") is True
        assert await repo.complete_sale_if_pending(sale.sale_id, time.time()) is False

        refreshed = await repo.get_item(item.item_id)
        assert refreshed.stock == 2
        assert refreshed.sales_count == 1
        assert (await repo.get_user("u1")).purchases_completed == 1
        stored = await repo.get_sale(sale.sale_id)
        assert stored.status == SaleStatus.COMPLETED
        assert stored.transaction_ref == "tx-1"

    async def test_unlimited_stock_is_not_decremented(self, repo: SQLiteRepository) -> None:
        item = await _item(repo, stock=-1)
        sale = await repo.insert_sale(Sale(owner_id="u1", item_id=item.item_id, amount=item.price))
        await repo.complete_sale_if_pending(sale.sale_id, time.time())
        assert (await repo.get_item(item.item_id)).stock == -1

    async def test_ownership_requires_exact_pair(self, repo: SQLiteRepository) -> None:
        x = await _item(repo)
        y = await _item(repo)
        sale = await repo.insert_sale(Sale(owner_id="u1", item_id=x.item_id, amount=x.price))
        assert not await repo.has_completed_sale("u1", x.item_id)

        await repo.complete_sale_if_pending(sale.sale_id, time.time())
        assert await repo.has_completed_sale("u1", x.item_id)
        assert not await repo.has_completed_sale("u1", y.item_id)
        assert not await repo.has_completed_sale("u2", x.item_id)

    async def test_cancelled_sale_cannot_complete(self, repo: SQLiteRepository) -> None:
        item = await _item(repo)
        sale = await repo.insert_sale(Sale(owner_id="u1", item_id=item.item_id, amount=item.price))
        assert await repo.cancel_sale_if_pending(sale.sale_id)
        assert not await repo.complete_sale_if_pending(sale.sale_id, time.time())

    async def test_price_round_trips_as_decimal(self, repo: SQLiteRepository) -> None:
        item = await _item(repo, price="19.90")
        assert (await repo.get_item(item.item_id)).price == Decimal("19.90")


@pytest.mark.unit
class TestSecurityEventsAndSettings:
    async def test_purge_respects_cutoff(self, repo: SQLiteRepository) -> None:
        await repo.add_security_event(SecurityEvent("OLD", created_at=10.0))
        await repo.add_security_event(SecurityEvent("NEW", user_id="u1", details={"k": 1}))

        assert await repo.purge_security_events(older_than=1000.0) == 1
        events = await repo.list_security_events()
        assert [e.event_type for e in events] == ["NEW"]
        assert events[0].details == {"k": 1}

    async def test_settings_upsert(self, repo: SQLiteRepository) -> None:
        assert await repo.get_setting("ticket_category_id") is None
        await repo.set_setting("ticket_category_id", "111")
        await repo.set_setting("ticket_category_id", "222")
        assert await repo.get_setting("ticket_category_id") == "222"
