"""Event streaming infrastructure — EventBus protocol and implementations.

The EventBus is the audit sink boundary.  Every security-relevant occurrence
(admission denial, session open/close, purchase step, integrity failure) is
emitted as a structured dict to a topic so that external consumers (NDJSON
audit file, alerting hooks) can react without the core knowing about them.

Swap the backend by injecting a different EventBus implementation:
  - NullEventBus    → default (no-op)
  - LogEventBus     → NDJSON append-only file
  - FanoutEventBus  → audit file plus an injected alerting bus

Standard topic names:
  TOPIC_SECURITY = "ticketgate.security" — admission, blacklist, integrity
  TOPIC_SESSIONS = "ticketgate.sessions" — session lifecycle
  TOPIC_COMMERCE = "ticketgate.commerce" — purchases, sales, digital content
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ticketgate.logging import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Standard topic constants
# ---------------------------------------------------------------------------

TOPIC_SECURITY = "ticketgate.security"
TOPIC_SESSIONS = "ticketgate.sessions"
TOPIC_COMMERCE = "ticketgate.commerce"


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class EventBus(ABC):
    """Abstract event bus.  All implementations must be safe for concurrent async use.

    An event is a plain dict.  The bus adds a ``_topic`` key and a
    ``_timestamp`` (Unix epoch float) before forwarding to the backend.
    """

    @abstractmethod
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        """Publish *event* to *topic*.

        This method must not raise — failures are logged and swallowed so that
        a sink outage never aborts the operation that produced the event.
        """

    def _stamp(self, topic: str, event: dict[str, Any]) -> dict[str, Any]:
        """Add metadata fields to *event* in-place and return it."""
        event.setdefault("_topic", topic)
        event.setdefault("_timestamp", time.time())
        return event


# ---------------------------------------------------------------------------
# NullEventBus
# ---------------------------------------------------------------------------


class NullEventBus(EventBus):
    """Discards all events.  Used when no audit sink is configured."""

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        pass


# ---------------------------------------------------------------------------
# LogEventBus: NDJSON file
# ---------------------------------------------------------------------------


class LogEventBus(EventBus):
    """Writes events as NDJSON to a file — one line per event, append-only.

    Usage::

        bus = LogEventBus(Path("~/.ticketgate/audit.ndjson"))
        await bus.emit(TOPIC_SESSIONS, {"event": "SESSION_CREATED", "session_id": "123"})
    """

    def __init__(self, log_file: Path | None = None) -> None:
        self._file = log_file.expanduser() if log_file else None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path | None:
        return self._file

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        log.debug("event_bus_emit", topic=topic, event_type=event.get("event"))
        if self._file is None:
            return
        line = json.dumps(event, default=str) + "\n"
        async with self._lock:
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with self._file.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                log.error("event_bus_write_failed", topic=topic, error=str(exc))


# ---------------------------------------------------------------------------
# FanoutEventBus
# ---------------------------------------------------------------------------


class FanoutEventBus(EventBus):
    """Routes each event to multiple EventBus backends in parallel.

    A failing backend does not prevent delivery to the others.
    """

    def __init__(self, backends: list[EventBus]) -> None:
        self._backends = backends

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        results = await asyncio.gather(
            *(b.emit(topic, dict(event)) for b in self._backends),
            return_exceptions=True,
        )
        for backend, result in zip(self._backends, results):
            if isinstance(result, Exception):
                log.warning(
                    "event_bus_backend_failed",
                    backend=type(backend).__name__,
                    topic=topic,
                    error=str(result),
                )
