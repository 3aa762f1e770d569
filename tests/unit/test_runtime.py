"""Unit tests — Runtime wiring, reconfiguration and maintenance."""

from __future__ import annotations

from pathlib import Path

import pytest

from ticketgate.config import Settings
from ticketgate.events.bus import EventBus, FanoutEventBus
from ticketgate.exceptions import ConfigurationError, ErrorKind
from ticketgate.interactions import Interaction
from ticketgate.platform.memory import MemoryChannelProvider
from ticketgate.runtime import Runtime, load_provider
from ticketgate.security.models import SecurityEventType
from ticketgate.store.models import Sale, SecurityEvent


@pytest.mark.unit
class TestLoadProvider:
    def test_memory(self) -> None:
        assert isinstance(load_provider("memory", "bot"), MemoryChannelProvider)

    @pytest.mark.parametrize("target", ["no_colon_here", "ticketgate.nothing:Missing", "ticketgate.config:Settings"])
    def test_invalid_targets(self, target: str) -> None:
        with pytest.raises(ConfigurationError):
            load_provider(target, "bot")


@pytest.mark.unit
class TestRuntime:
    async def test_start_reconfigure_stop(self, test_settings: Settings) -> None:
        runtime = Runtime(test_settings, provider=MemoryChannelProvider())
        await runtime.start()
        try:
            assert runtime.started
            assert runtime.sessions.category_id == "cat-1"

            await runtime.configure_channels("cat-9", "products-1")
            assert runtime.sessions.category_id == "cat-9"
            assert runtime.products_channel_id == "products-1"
        finally:
            await runtime.stop()
        assert not runtime.started

    async def test_open_sessions_rearmed_on_restart(self, test_settings: Settings, make_actor) -> None:
        provider = MemoryChannelProvider()
        first = Runtime(test_settings, provider=provider)
        await first.start()
        session = await first.sessions.create_session(make_actor("u1"))
        await first.stop()

        second = Runtime(test_settings, provider=provider)
        await second.start()
        try:
            assert second.timers.has_idle(session.channel_id)
        finally:
            await second.stop()

    async def test_cleanup_purges_and_reconciles(self, test_settings: Settings, make_actor) -> None:
        provider = MemoryChannelProvider()
        runtime = Runtime(test_settings, provider=provider)
        await runtime.start()
        try:
            await runtime.repo.add_security_event(SecurityEvent("ANCIENT", created_at=1.0))
            session = await runtime.sessions.create_session(make_actor("u1"))
            provider.drop_channel(session.channel_id)

            report = await runtime.maintenance.run_cleanup()
            assert report.purged_events == 1
            assert report.closed_sessions == [session.channel_id]
            created = await runtime.repo.list_security_events(SecurityEventType.SESSION_CREATED.value)
            assert len(created) == 1
        finally:
            await runtime.stop()


class _RecordingBus(EventBus):
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    async def emit(self, topic: str, event: dict) -> None:
        self.events.append((topic, event))


@pytest.mark.unit
class TestRuntimeWiring:
    async def test_injected_bus_runs_alongside_audit_file(
        self, test_settings: Settings, tmp_path: Path
    ) -> None:
        test_settings.logging.audit_file = tmp_path / "audit.ndjson"
        recorder = _RecordingBus()
        runtime = Runtime(test_settings, provider=MemoryChannelProvider(), bus=recorder)
        await runtime.start()
        try:
            assert isinstance(runtime.bus, FanoutEventBus)
            await runtime.gate.blacklist("u9", "spam")
        finally:
            await runtime.stop()

        assert [e["event"] for _, e in recorder.events] == ["USER_BLACKLISTED"]
        assert "USER_BLACKLISTED" in (tmp_path / "audit.ndjson").read_text()

    async def test_completed_sale_republishes_storefront(self, test_settings: Settings) -> None:
        provider = MemoryChannelProvider()
        provider.add_channel("products-1")
        runtime = Runtime(test_settings, provider=provider)
        await runtime.start()
        try:
            assert await runtime.publish_catalog("products-1") == 0
            item = await runtime.catalog.create_item("Pack", "7", stock=2)
            sale = await runtime.repo.insert_sale(Sale(owner_id="u1", item_id=item.item_id, amount=item.price))

            await runtime.purchases.complete_sale(sale.sale_id, completed_by="admin-1")
        finally:
            await runtime.stop()

        storefront = provider.messages["products-1"]
        assert len(storefront) == 3
        assert "stock: 1" in storefront[-1].text
        assert storefront[-1].actions == [f"buy_product:{item.item_id}"]


@pytest.mark.unit
class TestIntegrityHaltAtRuntime:
    async def test_on_demand_verification_is_fatal(
        self, test_settings: Settings, tmp_path: Path, make_actor
    ) -> None:
        code = tmp_path / "code"
        code.mkdir()
        (code / "core.py").write_text("x = 1\n")
        runtime = Runtime(test_settings, provider=MemoryChannelProvider())
        await runtime.start()
        try:
            (code / "core.py").write_text("x = 2\n")
            assert await runtime.gate.verify_integrity() is False
            assert runtime.gate.halted

            checks = {c.name: c for c in await runtime.gate.self_test()}
            assert checks["integrity"].passed is False

            reply = await runtime.router.dispatch(Interaction(actor=make_actor("u1"), custom_id="create_ticket"))
            assert reply.error_kind == ErrorKind.INTEGRITY_VIOLATION
            assert await runtime.repo.get_open_session("u1") is None

            events = await runtime.repo.list_security_events(SecurityEventType.BOT_INTEGRITY_VIOLATION.value)
            assert len(events) == 1
            halt_tasks = list(runtime._halt_tasks)
            assert len(halt_tasks) == 2
        finally:
            await runtime.stop()

        assert all(t.done() for t in halt_tasks)
        assert runtime._halt_tasks == []
