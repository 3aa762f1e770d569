"""Security layer — Audit trail.

The SecurityAuditor is a thin semantic layer over two sinks:
  - the repository ``security_logs`` table (queried by staff, pruned by
    retention cleanup)
  - the EventBus (external alerting; NDJSON file by default)

Recording an event never aborts the operation that produced it: a failing
sink is logged and the caller carries on.

Usage::

    auditor = SecurityAuditor(repo, bus=LogEventBus(Path("~/.ticketgate/audit.ndjson")))
    await auditor.record(SecurityEventType.SESSION_CREATED, user_id="42", channel_id="c1")
"""

from __future__ import annotations

import time
from typing import Any

from ticketgate.events.bus import EventBus, NullEventBus
from ticketgate.logging import get_logger
from ticketgate.store.models import SecurityEvent
from ticketgate.store.repository import Repository
from ticketgate.security.models import SecurityEventType, topic_for

log = get_logger(__name__)


class SecurityAuditor:
    def __init__(self, repo: Repository | None, bus: EventBus | None = None) -> None:
        self._repo = repo
        self._bus: EventBus = bus or NullEventBus()

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def record(
        self,
        event_type: SecurityEventType,
        user_id: str | None = None,
        **data: Any,
    ) -> None:
        """Persist and publish one security event.  Never raises."""
        now = time.time()
        log.info("security_event", event_type=event_type.value, subject=user_id, **data)

        if self._repo is not None:
            try:
                await self._repo.add_security_event(
                    SecurityEvent(
                        event_type=event_type.value,
                        user_id=user_id,
                        details=data,
                        created_at=now,
                    )
                )
            except Exception as exc:
                log.error("audit_persist_failed", event_type=event_type.value, error=str(exc))

        record: dict[str, Any] = {"event": event_type.value, "timestamp": now}
        if user_id is not None:
            record["user_id"] = user_id
        record.update(data)
        try:
            await self._bus.emit(topic_for(event_type), record)
        except Exception as exc:
            log.error("audit_emit_failed", event_type=event_type.value, error=str(exc))
