"""Security layer — admission gate, rate limiters, payload cipher, signed tokens, integrity, audit."""

from ticketgate.security.audit import SecurityAuditor
from ticketgate.security.context import SecurityContext
from ticketgate.security.crypto import PayloadCipher, TokenSigner, generate_key
from ticketgate.security.gate import SecurityGate, SelfTestCheck
from ticketgate.security.integrity import IntegrityMonitor, compute_digest
from ticketgate.security.models import (
    SYSTEM_ACTOR,
    Actor,
    AdmissionResult,
    RateLimitDecision,
    SecurityEventType,
    TokenFailure,
    TokenVerification,
)
from ticketgate.security.rate_limiter import FixedWindowRateLimiter

__all__ = [
    "Actor",
    "AdmissionResult",
    "FixedWindowRateLimiter",
    "IntegrityMonitor",
    "PayloadCipher",
    "RateLimitDecision",
    "SYSTEM_ACTOR",
    "SecurityAuditor",
    "SecurityContext",
    "SecurityEventType",
    "SecurityGate",
    "SelfTestCheck",
    "TokenFailure",
    "TokenSigner",
    "TokenVerification",
    "compute_digest",
    "generate_key",
]
