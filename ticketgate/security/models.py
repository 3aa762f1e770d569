"""Security layer — Actor, event and decision types.

Defines the admission-control vocabulary shared by every layer:
  - ``Actor``             — the identity behind an inbound interaction
  - ``SecurityEventType`` — tags for the append-only audit trail
  - ``AdmissionResult``   — outcome of ``SecurityGate.validate_actor``
  - ``RateLimitDecision`` — outcome of a limiter consumption
  - ``TokenVerification`` — outcome of signed-token verification
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ticketgate.events.bus import TOPIC_COMMERCE, TOPIC_SECURITY, TOPIC_SESSIONS
from ticketgate.exceptions import ErrorKind


@dataclass(frozen=True)
class Actor:
    """An identity acting on the system.

    ``is_staff`` is the elevated capability granted by the platform (e.g. a
    manage-channels permission); admin status is decided separately by the
    static allow-list.
    """

    user_id: str
    display_name: str = ""
    is_bot: bool = False
    created_at: float | None = None
    avatar: str | None = None
    is_staff: bool = False

    def account_age_days(self, now: float | None = None) -> float | None:
        if self.created_at is None:
            return None
        return ((now or time.time()) - self.created_at) / 86400


SYSTEM_ACTOR = Actor(user_id="system", display_name="system", is_staff=True)


class SecurityEventType(str, Enum):
    # Sessions
    SESSION_CREATED = "SESSION_CREATED"
    SESSION_CLOSED = "SESSION_CLOSED"
    SESSION_CLAIMED = "SESSION_CLAIMED"
    TRANSCRIPT_GENERATED = "TRANSCRIPT_GENERATED"
    # Commerce
    PURCHASE_INITIATED = "PURCHASE_INITIATED"
    SALE_COMPLETED = "SALE_COMPLETED"
    SALE_CANCELLED = "SALE_CANCELLED"
    DIGITAL_CONTENT_ACCESSED = "DIGITAL_CONTENT_ACCESSED"
    # Admission
    BLACKLISTED_USER_ATTEMPT = "BLACKLISTED_USER_ATTEMPT"
    BOT_INTERACTION_ATTEMPT = "BOT_INTERACTION_ATTEMPT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    RATE_LIMIT_HIT = "RATE_LIMIT_HIT"
    NEW_ACCOUNT_INTERACTION = "NEW_ACCOUNT_INTERACTION"
    DEFAULT_AVATAR_USER = "DEFAULT_AVATAR_USER"
    # Administration
    USER_BLACKLISTED = "USER_BLACKLISTED"
    USER_REMOVED_FROM_BLACKLIST = "USER_REMOVED_FROM_BLACKLIST"
    BOT_INTEGRITY_VIOLATION = "BOT_INTEGRITY_VIOLATION"
    USER_ACTIVITY = "USER_ACTIVITY"
    INTERACTION_ERROR = "INTERACTION_ERROR"


_SESSION_EVENTS = {
    SecurityEventType.SESSION_CREATED,
    SecurityEventType.SESSION_CLOSED,
    SecurityEventType.SESSION_CLAIMED,
    SecurityEventType.TRANSCRIPT_GENERATED,
}
_COMMERCE_EVENTS = {
    SecurityEventType.PURCHASE_INITIATED,
    SecurityEventType.SALE_COMPLETED,
    SecurityEventType.SALE_CANCELLED,
    SecurityEventType.DIGITAL_CONTENT_ACCESSED,
}


def topic_for(event_type: SecurityEventType) -> str:
    if event_type in _SESSION_EVENTS:
        return TOPIC_SESSIONS
    if event_type in _COMMERCE_EVENTS:
        return TOPIC_COMMERCE
    return TOPIC_SECURITY


@dataclass
class AdmissionResult:
    admitted: bool
    reason: ErrorKind | None = None
    reset_seconds: int | None = None
    flags: list[SecurityEventType] = field(default_factory=list)

    @classmethod
    def deny(cls, reason: ErrorKind, reset_seconds: int | None = None) -> "AdmissionResult":
        return cls(admitted=False, reason=reason, reset_seconds=reset_seconds)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_seconds": self.reset_seconds,
        }


class TokenFailure(str, Enum):
    EXPIRED = "EXPIRED"
    BAD_SIGNATURE = "BAD_SIGNATURE"
    MALFORMED = "MALFORMED"


@dataclass(frozen=True)
class TokenVerification:
    valid: bool
    payload: Any = None
    failure: TokenFailure | None = None
