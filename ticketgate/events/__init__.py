"""Audit sink layer — EventBus infrastructure.

Quick start::

    from ticketgate.events import LogEventBus, TOPIC_SECURITY

    bus = LogEventBus(Path("~/.ticketgate/audit.ndjson"))
    await bus.emit(TOPIC_SECURITY, {"event": "USER_BLACKLISTED", "user_id": "42"})
"""

from ticketgate.events.bus import (
    TOPIC_COMMERCE,
    TOPIC_SECURITY,
    TOPIC_SESSIONS,
    EventBus,
    FanoutEventBus,
    LogEventBus,
    NullEventBus,
)

__all__ = [
    # Interface
    "EventBus",
    # Implementations
    "NullEventBus",
    "LogEventBus",
    "FanoutEventBus",
    # Topic constants
    "TOPIC_SECURITY",
    "TOPIC_SESSIONS",
    "TOPIC_COMMERCE",
]
