"""Security layer — SecurityGate facade.

Every inbound actor action passes through the gate before any session or
purchase logic runs.  Admission order:

    blacklist → automated-account rejection → ``interactions`` limiter
              → advisory heuristics (new account, default avatar)

Each deny path records a security event; heuristics record an event but
never deny.  The gate also owns payload encryption, signed tokens and the
integrity monitor, and exposes a self-test used by setup diagnostics.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ticketgate.exceptions import (
    BlacklistedError,
    DecryptionError,
    ErrorKind,
    IntegrityViolationError,
    NonHumanActorError,
    NotAdminError,
    RateLimitedError,
)
from ticketgate.logging import get_logger
from ticketgate.security.audit import SecurityAuditor
from ticketgate.security.context import SecurityContext
from ticketgate.security.crypto import PayloadCipher, TokenSigner
from ticketgate.security.integrity import IntegrityMonitor, compute_digest
from ticketgate.security.models import (
    Actor,
    AdmissionResult,
    RateLimitDecision,
    SecurityEventType,
    TokenVerification,
)

log = get_logger(__name__)

INTERACTIONS_LIMITER = "interactions"


@dataclass(frozen=True)
class SelfTestCheck:
    name: str
    passed: bool
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "detail": self.detail}


class SecurityGate:
    def __init__(
        self,
        context: SecurityContext,
        auditor: SecurityAuditor,
        cipher: PayloadCipher,
        signer: TokenSigner,
        monitor: IntegrityMonitor | None = None,
        new_account_age_days: float = 7,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.context = context
        self.auditor = auditor
        self._cipher = cipher
        self._signer = signer
        self._monitor = monitor
        self._new_account_age_days = new_account_age_days
        self._clock = clock
        self._halt_callbacks: list[Callable[[], None]] = []

    # ---------------------------------------------------------------------------
    # Admission
    # ---------------------------------------------------------------------------

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.context.admin_ids

    def require_admin(self, user_id: str) -> None:
        if not self.is_admin(user_id):
            raise NotAdminError(user_id)

    async def validate_actor(self, actor: Actor) -> AdmissionResult:
        user_id = actor.user_id

        if self.context.is_blacklisted(user_id):
            await self.auditor.record(
                SecurityEventType.BLACKLISTED_USER_ATTEMPT,
                user_id=user_id,
                username=actor.display_name,
            )
            return AdmissionResult.deny(ErrorKind.BLACKLISTED)

        if actor.is_bot:
            await self.auditor.record(
                SecurityEventType.BOT_INTERACTION_ATTEMPT,
                user_id=user_id,
                username=actor.display_name,
            )
            return AdmissionResult.deny(ErrorKind.NON_HUMAN)

        limiter = self.context.limiters.get(INTERACTIONS_LIMITER)
        if limiter is not None:
            decision = await limiter.consume(user_id)
            if not decision.allowed:
                await self.auditor.record(
                    SecurityEventType.RATE_LIMIT_EXCEEDED,
                    user_id=user_id,
                    username=actor.display_name,
                    limiter=INTERACTIONS_LIMITER,
                )
                return AdmissionResult.deny(ErrorKind.RATE_LIMITED, decision.reset_seconds)

        flags = await self._run_heuristics(actor)
        return AdmissionResult(admitted=True, flags=flags)

    async def admit(self, actor: Actor) -> None:
        """``validate_actor`` that raises the matching error on deny."""
        result = await self.validate_actor(actor)
        if result.admitted:
            return
        if result.reason == ErrorKind.BLACKLISTED:
            raise BlacklistedError(actor.user_id)
        if result.reason == ErrorKind.NON_HUMAN:
            raise NonHumanActorError(actor.user_id)
        raise RateLimitedError(actor.user_id, INTERACTIONS_LIMITER, result.reset_seconds or 1)

    async def _run_heuristics(self, actor: Actor) -> list[SecurityEventType]:
        flags: list[SecurityEventType] = []
        age = actor.account_age_days(self._clock())
        if age is not None and age < self._new_account_age_days:
            flags.append(SecurityEventType.NEW_ACCOUNT_INTERACTION)
            await self.auditor.record(
                SecurityEventType.NEW_ACCOUNT_INTERACTION,
                user_id=actor.user_id,
                username=actor.display_name,
                account_age_days=round(age, 2),
            )
        if not actor.avatar:
            flags.append(SecurityEventType.DEFAULT_AVATAR_USER)
            await self.auditor.record(
                SecurityEventType.DEFAULT_AVATAR_USER,
                user_id=actor.user_id,
                username=actor.display_name,
            )
        return flags

    async def check_rate_limit(self, subject_id: str, limiter_name: str) -> RateLimitDecision:
        """Consume one point from *limiter_name*.  Unknown limiters always allow."""
        limiter = self.context.limiters.get(limiter_name)
        if limiter is None:
            return RateLimitDecision(allowed=True, remaining=0)
        decision = await limiter.consume(subject_id)
        if not decision.allowed:
            await self.auditor.record(
                SecurityEventType.RATE_LIMIT_HIT,
                user_id=subject_id,
                limiter=limiter_name,
                reset_seconds=decision.reset_seconds,
            )
        return decision

    async def enforce_rate_limit(self, subject_id: str, limiter_name: str) -> None:
        decision = await self.check_rate_limit(subject_id, limiter_name)
        if not decision.allowed:
            raise RateLimitedError(subject_id, limiter_name, decision.reset_seconds or 1)

    # ---------------------------------------------------------------------------
    # Blacklist
    # ---------------------------------------------------------------------------

    async def blacklist(self, user_id: str, reason: str, actor_id: str | None = None) -> bool:
        """Idempotent.  Returns True if the set changed."""
        changed = await self.context.add_to_blacklist(user_id)
        if self.context.repo is not None:
            await self.context.repo.set_blacklisted(user_id, True)
        await self.auditor.record(
            SecurityEventType.USER_BLACKLISTED,
            user_id=user_id,
            reason=reason,
            by=actor_id,
            changed=changed,
        )
        return changed

    async def unblacklist(self, user_id: str, actor_id: str | None = None) -> bool:
        changed = await self.context.remove_from_blacklist(user_id)
        if self.context.repo is not None:
            await self.context.repo.set_blacklisted(user_id, False)
        await self.auditor.record(
            SecurityEventType.USER_REMOVED_FROM_BLACKLIST,
            user_id=user_id,
            by=actor_id,
            changed=changed,
        )
        return changed

    async def record_member_activity(self, user_id: str, activity: str, **data: Any) -> None:
        """Platform join/leave hook."""
        await self.auditor.record(
            SecurityEventType.USER_ACTIVITY,
            user_id=user_id,
            activity=activity,
            **data,
        )

    # ---------------------------------------------------------------------------
    # Payload protection
    # ---------------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        return self._cipher.encrypt(plaintext)

    def decrypt(self, envelope: str) -> str:
        return self._cipher.decrypt(envelope)

    def issue_token(self, payload: Any, ttl: int | None = None) -> str:
        return self._signer.issue(payload, ttl)

    def verify_token(self, token: str) -> TokenVerification:
        return self._signer.verify(token)

    # ---------------------------------------------------------------------------
    # Integrity
    # ---------------------------------------------------------------------------

    @staticmethod
    def compute_integrity_digest(paths: list[Path]) -> str:
        return compute_digest(paths)

    @property
    def halted(self) -> bool:
        return self._monitor is not None and self._monitor.halted

    def on_halt(self, callback: Callable[[], None]) -> None:
        self._halt_callbacks.append(callback)

    async def verify_integrity(self) -> bool:
        """Re-hash now.  A mismatch halts exactly as the background check does."""
        if self._monitor is None:
            return True
        return await self._monitor.check()

    def ensure_not_halted(self) -> None:
        if self.halted:
            assert self._monitor is not None
            raise IntegrityViolationError(self._monitor.baseline or "", "halted")

    async def handle_integrity_violation(self, expected: str, actual: str) -> None:
        """Violation callback wired into the IntegrityMonitor."""
        await self.auditor.record(
            SecurityEventType.BOT_INTEGRITY_VIOLATION,
            expected=expected,
            actual=actual,
        )
        for callback in self._halt_callbacks:
            try:
                callback()
            except Exception as exc:
                log.error("halt_callback_failed", error=str(exc))

    # ---------------------------------------------------------------------------
    # Diagnostics
    # ---------------------------------------------------------------------------

    async def self_test(self) -> list[SelfTestCheck]:
        checks: list[SelfTestCheck] = []

        sample = "ticketgate-self-test"
        try:
            ok = self.decrypt(self.encrypt(sample)) == sample
            checks.append(SelfTestCheck("encryption", ok, "" if ok else "round-trip mismatch"))
        except DecryptionError as exc:
            checks.append(SelfTestCheck("encryption", False, exc.reason))

        verification = self.verify_token(self.issue_token({"self_test": sample}, ttl=60))
        token_ok = verification.valid and verification.payload == {"self_test": sample}
        checks.append(
            SelfTestCheck(
                "signed_tokens",
                token_ok,
                "" if token_ok else str(verification.failure.value if verification.failure else "payload mismatch"),
            )
        )

        if self._monitor is None:
            checks.append(SelfTestCheck("integrity", True, "monitor disabled"))
        else:
            intact = await self.verify_integrity()
            checks.append(SelfTestCheck("integrity", intact, "" if intact else "digest mismatch"))

        checks.append(
            SelfTestCheck(
                "rate_limiters",
                bool(self.context.limiters),
                ", ".join(sorted(self.context.limiters)),
            )
        )
        log.info("security_self_test", passed=all(c.passed for c in checks))
        return checks
