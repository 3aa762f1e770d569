"""Runtime — process wiring and lifecycle.

Builds every component from ``Settings`` and a ``ChannelProvider``, in
dependency order, and owns their start/stop sequence.  Nothing else in the
package constructs long-lived objects.

Usage::

    runtime = Runtime(Settings.load(), provider=MyDiscordProvider(client))
    await runtime.start()
    reply = await runtime.router.dispatch(interaction)
    await runtime.stop()
"""

from __future__ import annotations

import asyncio
import importlib
from pathlib import Path

import ticketgate
from ticketgate.commerce.catalog import CatalogPublisher, CatalogService
from ticketgate.commerce.confirmation import ConfirmationGate
from ticketgate.commerce.purchases import PurchaseService
from ticketgate.config import Settings
from ticketgate.events.bus import EventBus, FanoutEventBus, LogEventBus, NullEventBus
from ticketgate.exceptions import ConfigurationError
from ticketgate.interactions import InteractionRouter
from ticketgate.logging import get_logger
from ticketgate.maintenance import MaintenanceService
from ticketgate.platform.memory import MemoryChannelProvider
from ticketgate.platform.provider import ChannelProvider
from ticketgate.security.audit import SecurityAuditor
from ticketgate.security.context import SecurityContext
from ticketgate.security.crypto import PayloadCipher, TokenSigner
from ticketgate.security.gate import SecurityGate
from ticketgate.security.integrity import IntegrityMonitor
from ticketgate.sessions.manager import SessionManager
from ticketgate.sessions.sweeper import OrphanSweeper
from ticketgate.sessions.timers import SessionTimers
from ticketgate.store.repository import Repository
from ticketgate.store.sqlite import SQLiteRepository

log = get_logger(__name__)

SETTING_TICKET_CATEGORY = "ticket_category_id"
SETTING_PRODUCTS_CHANNEL = "products_channel_id"


def load_provider(target: str, bot_id: str) -> ChannelProvider:
    """Resolve ``platform.provider``: ``"memory"`` or ``"package.module:ClassName"``."""
    if target == "memory":
        log.warning("memory_provider_in_use", detail="Channels exist only inside this process.")
        return MemoryChannelProvider(bot_id=bot_id)
    module_name, sep, class_name = target.partition(":")
    if not sep:
        raise ConfigurationError(f"Provider '{target}' must look like 'module:ClassName'")
    try:
        cls = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"Cannot load provider '{target}': {exc}") from exc
    if not (isinstance(cls, type) and issubclass(cls, ChannelProvider)):
        raise ConfigurationError(f"'{target}' is not a ChannelProvider")
    return cls()


class Runtime:
    def __init__(
        self,
        settings: Settings,
        provider: ChannelProvider | None = None,
        repo: Repository | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = settings
        sec = settings.security

        self.provider = provider or load_provider(settings.platform.provider, settings.platform.bot_user_id)
        self.repo: Repository = repo or SQLiteRepository(settings.storage.db_path)
        # An injected bus (alerting hook) runs alongside the NDJSON audit file.
        audit_file = settings.logging.audit_file
        if bus is None:
            bus = LogEventBus(audit_file) if audit_file else NullEventBus()
        elif audit_file:
            bus = FanoutEventBus([LogEventBus(audit_file), bus])
        self.bus = bus
        self.auditor = SecurityAuditor(self.repo, self.bus)

        # Security
        self.security_context = SecurityContext.from_config(sec, repo=self.repo)
        self.monitor = IntegrityMonitor(
            sec.integrity_paths or [Path(ticketgate.__file__).parent],
            interval_seconds=sec.integrity_check_interval_seconds,
            on_violation=self._on_integrity_violation,
        )
        self.gate = SecurityGate(
            self.security_context,
            self.auditor,
            PayloadCipher.from_hex(sec.encryption_key),
            TokenSigner.from_hex(sec.signing_key, sec.token_ttl_seconds),
            monitor=self.monitor,
            new_account_age_days=sec.new_account_age_days,
        )
        self.gate.on_halt(self._halt)

        # Sessions
        self.timers = SessionTimers()
        self.sessions = SessionManager(
            self.repo,
            self.provider,
            self.gate,
            self.timers,
            settings.sessions,
            bot_id=settings.platform.bot_user_id,
            currency=settings.commerce.currency,
        )
        self.sweeper = OrphanSweeper(self.sessions, settings.sessions.orphan_sweep_interval_seconds)

        # Commerce
        self.confirmations = ConfirmationGate(settings.commerce.confirmation_timeout_seconds)
        self.publisher = CatalogPublisher(
            self.repo,
            self.provider,
            currency=settings.commerce.currency,
            max_items=settings.commerce.max_catalog_items,
            channel_id=settings.commerce.products_channel_id,
        )
        self.catalog = CatalogService(
            self.repo, self.gate, settings.commerce.max_catalog_items, publisher=self.publisher
        )
        self.purchases = PurchaseService(
            self.repo,
            self.sessions,
            self.gate,
            self.confirmations,
            currency=settings.commerce.currency,
            publisher=self.publisher,
        )

        self.router = InteractionRouter(self.gate, self.sessions, self.purchases)
        self.maintenance = MaintenanceService(
            self.repo, self.sessions, settings.storage.security_event_retention_days
        )
        self._halt_tasks: list[asyncio.Task[None]] = []
        self._started = False

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    @property
    def products_channel_id(self) -> str | None:
        return self.publisher.channel_id

    async def start(self) -> None:
        await self.repo.init()
        await self.security_context.start()
        await self.reconfigure()
        await self.monitor.start()
        await self.sessions.rearm_open_sessions()
        await self.sweeper.start()
        self._started = True
        log.info("runtime_started", version=ticketgate.__version__)

    async def stop(self) -> None:
        if self._halt_tasks:
            results = await asyncio.gather(*self._halt_tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    log.error("halt_shutdown_failed", error=str(result))
            self._halt_tasks.clear()
        await self.sweeper.stop()
        await self.monitor.stop()
        await self.timers.stop()
        await self.security_context.stop()
        await self.repo.close()
        self._started = False
        log.info("runtime_stopped")

    async def reconfigure(self) -> None:
        """Re-read the runtime overrides from the repository settings table."""
        category = await self.repo.get_setting(SETTING_TICKET_CATEGORY)
        products = await self.repo.get_setting(SETTING_PRODUCTS_CHANNEL)
        self.sessions.category_id = category or self.settings.sessions.category_id
        self.publisher.channel_id = products or self.settings.commerce.products_channel_id
        log.info(
            "runtime_reconfigured",
            category_id=self.sessions.category_id,
            products_channel_id=self.products_channel_id,
        )

    async def configure_channels(self, category_id: str, products_channel_id: str | None = None) -> None:
        await self.repo.set_setting(SETTING_TICKET_CATEGORY, category_id)
        if products_channel_id:
            await self.repo.set_setting(SETTING_PRODUCTS_CHANNEL, products_channel_id)
        await self.reconfigure()

    async def publish_catalog(self, channel_id: str | None = None) -> int:
        """Post the storefront, optionally switching the products channel first."""
        if channel_id:
            await self.repo.set_setting(SETTING_PRODUCTS_CHANNEL, channel_id)
            await self.reconfigure()
        return await self.publisher.publish()

    # ---------------------------------------------------------------------------
    # Integrity halt
    # ---------------------------------------------------------------------------

    async def _on_integrity_violation(self, expected: str, actual: str) -> None:
        await self.gate.handle_integrity_violation(expected, actual)

    def _halt(self) -> None:
        log.critical("runtime_halted", reason="integrity violation")
        loop = asyncio.get_running_loop()
        self._halt_tasks.extend(
            [
                loop.create_task(self.sweeper.stop(), name="halt_sweeper"),
                loop.create_task(self.timers.stop(), name="halt_timers"),
            ]
        )
