"""Sessions layer — Session lifecycle manager.

Owns the one-OPEN-session-per-user invariant and every OPEN → CLOSED
transition.

State machine::

    OPEN ──close_session───────────► CLOSED   (owner or staff, 10 s grace)
    OPEN ──idle timer fires────────► CLOSED   (system, "idle-timeout", 30 s grace)
    OPEN ──reconcile_orphans───────► CLOSED   (system, "channel missing", no deletion)

Exclusivity is enforced twice: a per-owner lock serialises check-then-create
inside the process, and the repository's conditional insert rejects a second
OPEN row regardless of who wrote it.  Closure races (idle timer vs explicit
close vs orphan sweep) are resolved by ``Repository.close_session_if_open``:
only the caller that performs the transition cancels the timer, records the
event and schedules the single channel deletion.

Usage::

    manager = SessionManager(repo, provider, gate, SessionTimers(), settings.sessions)
    session = await manager.create_session(actor, item_id=3)
    result = await manager.close_session(session.channel_id, actor, "resolved")
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable

from ticketgate.config import SessionConfig
from ticketgate.exceptions import (
    AlreadyHasSessionError,
    CategoryNotConfiguredError,
    ForbiddenError,
    ResourceError,
    SessionNotFoundError,
    StorageError,
)
from ticketgate.locks import KeyedLocks
from ticketgate.logging import bind_interaction_context, get_logger
from ticketgate.platform.provider import ChannelPermissions, ChannelProvider
from ticketgate.security.gate import SecurityGate
from ticketgate.security.models import SYSTEM_ACTOR, Actor, SecurityEventType
from ticketgate.sessions.timers import SessionTimers
from ticketgate.sessions.transcript import Transcript, archive_transcript, render_transcript
from ticketgate.store.models import CatalogItem, Session, SessionStats, SessionStatus
from ticketgate.store.repository import Repository

log = get_logger(__name__)

IDLE_TIMEOUT_REASON = "idle-timeout"
ORPHAN_REASON = "channel missing"

_CHANNEL_NAME_RE = re.compile(r"[^a-z0-9-]")


def channel_name(display_name: str, now: float) -> str:
    """``ticket-<name>-<last 6 digits of the ms timestamp>``, limited to ``[a-z0-9-]``."""
    suffix = str(int(now * 1000))[-6:]
    return _CHANNEL_NAME_RE.sub("", f"ticket-{display_name}-{suffix}".lower())


def welcome_message(owner: Actor, item: CatalogItem | None, currency: str = "BRL") -> str:
    lines = [f"Welcome <@{owner.user_id}>! A member of staff will be with you shortly."]
    if item is not None:
        lines.append(f"Product: {item.name}")
        lines.append(f"Price: {currency} {item.price:.2f}")
        if item.description:
            lines.append(item.description)
    else:
        lines.append("Describe what you need and we will help you as soon as possible.")
    return "\n".join(lines)


@dataclass(frozen=True)
class ClosureResult:
    session: Session
    performed: bool
    transcript: Transcript | None = None


class SessionManager:
    def __init__(
        self,
        repo: Repository,
        provider: ChannelProvider,
        gate: SecurityGate,
        timers: SessionTimers,
        config: SessionConfig,
        bot_id: str = "ticketgate",
        currency: str = "BRL",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repo = repo
        self._provider = provider
        self._gate = gate
        self._timers = timers
        self._config = config
        self._bot_id = bot_id
        self._currency = currency
        self._clock = clock
        self.category_id: str | None = config.category_id
        self._owner_locks = KeyedLocks("session_owner")
        self._channel_locks = KeyedLocks("session_channel")

    @property
    def timers(self) -> SessionTimers:
        return self._timers

    def is_staff(self, actor: Actor) -> bool:
        return actor.is_staff or self._gate.is_admin(actor.user_id)

    # ---------------------------------------------------------------------------
    # Creation
    # ---------------------------------------------------------------------------

    async def get_open_session(self, owner_id: str) -> Session | None:
        return await self._repo.get_open_session(owner_id)

    async def create_session(self, owner: Actor, item_id: int | None = None) -> Session:
        """Open a new session for *owner*.

        Raises:
            AlreadyHasSessionError: *owner* already holds an OPEN session
                (``exc.existing`` points at it).
            CategoryNotConfiguredError: no parent category is configured.
            ResourceError: the channel could not be provisioned or greeted;
                nothing is left behind in the repository.
        """
        owner_id = owner.user_id
        async with self._owner_locks.acquire(owner_id):
            existing = await self._repo.get_open_session(owner_id)
            if existing is not None:
                raise AlreadyHasSessionError(owner_id, existing)

            category = self.category_id
            if not category:
                raise CategoryNotConfiguredError()

            await self._repo.upsert_user(owner_id, owner.display_name, owner.avatar)
            item = await self._repo.get_item(item_id) if item_id is not None else None

            now = self._clock()
            name = channel_name(owner.display_name or owner_id, now)
            permissions = ChannelPermissions.private_ticket(owner_id, self._bot_id)
            try:
                channel_id = await self._provider.create_channel(category, name, permissions)
            except Exception as exc:
                log.error("channel_create_failed", owner_id=owner_id, error=str(exc))
                raise ResourceError("create_channel", str(exc)) from exc

            session = Session(channel_id=channel_id, owner_id=owner_id, item_id=item_id, created_at=now)
            try:
                await self._repo.insert_session(session)
            except (AlreadyHasSessionError, StorageError):
                await self._discard_channel(channel_id)
                raise

            try:
                await self._provider.send_message(
                    channel_id, welcome_message(owner, item, self._currency)
                )
            except Exception as exc:
                log.error("welcome_message_failed", channel_id=channel_id, error=str(exc))
                await self._repo.delete_session(channel_id)
                await self._discard_channel(channel_id)
                raise ResourceError("send_message", str(exc), channel_id) from exc

            await self._repo.increment_sessions_opened(owner_id)
            self._timers.arm_idle(channel_id, self._config.idle_timeout_seconds, self._on_idle)

        bind_interaction_context(session_id=channel_id)
        log.info("session_created", channel_id=channel_id, owner_id=owner_id, item_id=item_id)
        await self._gate.auditor.record(
            SecurityEventType.SESSION_CREATED,
            user_id=owner_id,
            channel_id=channel_id,
            item_id=item_id,
        )
        return session

    async def _discard_channel(self, channel_id: str) -> None:
        try:
            await self._provider.delete_channel(channel_id)
        except Exception as exc:
            log.error("channel_rollback_failed", channel_id=channel_id, error=str(exc))

    # ---------------------------------------------------------------------------
    # Closure
    # ---------------------------------------------------------------------------

    async def close_session(self, session_id: str, closer: Actor, reason: str) -> ClosureResult:
        """Close an OPEN session on behalf of its owner or a staff member.

        Closing an already-closed session is a no-op (``performed=False``).

        Raises:
            SessionNotFoundError: no session maps to *session_id*.
            ForbiddenError: *closer* is neither the owner nor staff.
            ResourceError: the transcript could not be fetched; the session
                stays OPEN.
        """
        async with self._channel_locks.acquire(session_id):
            session = await self._repo.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if closer.user_id != session.owner_id and not self.is_staff(closer):
                raise ForbiddenError(closer.user_id, "close", session_id)
            if not session.is_open:
                return ClosureResult(session=session, performed=False)

            transcript = await self._capture_transcript(session)
            result = await self._transition(
                session,
                closer_id=closer.user_id,
                reason=reason,
                grace=self._config.close_grace_seconds,
                transcript=transcript,
                notice=f"Ticket closed by <@{closer.user_id}>. This channel will be deleted shortly.",
            )
        return result

    async def _on_idle(self, session_id: str) -> None:
        """Idle timer callback: same closure path, attributed to the system."""
        async with self._channel_locks.acquire(session_id):
            session = await self._repo.get_session(session_id)
            if session is None or not session.is_open:
                return
            hours = self._config.idle_timeout_hours
            await self._notify(
                session_id,
                f"This ticket was closed automatically after {hours:g} hours without activity.",
            )
            try:
                transcript = await self._capture_transcript(session)
            except ResourceError as exc:
                log.warning("idle_transcript_skipped", session_id=session_id, error=exc.message)
                transcript = None
            await self._transition(
                session,
                closer_id=SYSTEM_ACTOR.user_id,
                reason=IDLE_TIMEOUT_REASON,
                grace=self._config.idle_grace_seconds,
                transcript=transcript,
            )

    async def _transition(
        self,
        session: Session,
        closer_id: str,
        reason: str,
        grace: float | None,
        transcript: Transcript | None,
        notice: str | None = None,
    ) -> ClosureResult:
        now = self._clock()
        performed = await self._repo.close_session_if_open(session.channel_id, closer_id, reason, now)
        if not performed:
            log.info("session_already_closed", channel_id=session.channel_id, reason=reason)
            current = await self._repo.get_session(session.channel_id) or session
            return ClosureResult(session=current, performed=False)

        self._timers.cancel_idle(session.channel_id)
        closed = replace(
            session,
            status=SessionStatus.CLOSED,
            closed_at=now,
            closed_by=closer_id,
            close_reason=reason,
        )
        if transcript is not None and self._config.transcript_dir is not None:
            transcript = self._archive(transcript)

        log.info("session_closed", channel_id=session.channel_id, closed_by=closer_id, reason=reason)
        await self._gate.auditor.record(
            SecurityEventType.SESSION_CLOSED,
            user_id=session.owner_id,
            channel_id=session.channel_id,
            closed_by=closer_id,
            reason=reason,
        )
        if notice is not None:
            await self._notify(session.channel_id, notice)
        if grace is not None:
            self._timers.schedule_deletion(session.channel_id, grace, self._delete_channel)
        return ClosureResult(session=closed, performed=True, transcript=transcript)

    async def _delete_channel(self, session_id: str) -> None:
        await self._provider.delete_channel(session_id)
        log.info("session_channel_deleted", channel_id=session_id)

    async def _notify(self, channel_id: str, content: str) -> None:
        try:
            await self._provider.send_message(channel_id, content)
        except Exception as exc:
            log.warning("session_notice_failed", channel_id=channel_id, error=str(exc))

    # ---------------------------------------------------------------------------
    # Claim / transcript
    # ---------------------------------------------------------------------------

    async def claim_session(self, session_id: str, staff: Actor) -> Session:
        """Annotate a session as taken by *staff*.  Status is unchanged."""
        if not self.is_staff(staff):
            raise ForbiddenError(staff.user_id, "claim", session_id)
        session = await self._repo.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        await self._notify(session_id, f"This ticket was claimed by <@{staff.user_id}>.")
        await self._gate.auditor.record(
            SecurityEventType.SESSION_CLAIMED,
            user_id=staff.user_id,
            channel_id=session_id,
            owner_id=session.owner_id,
        )
        return session

    async def generate_transcript(self, session_id: str, requester: Actor) -> Transcript:
        session = await self._repo.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if requester.user_id != session.owner_id and not self.is_staff(requester):
            raise ForbiddenError(requester.user_id, "export the transcript of", session_id)

        transcript = await self._capture_transcript(session)
        if self._config.transcript_dir is not None:
            transcript = self._archive(transcript)
        await self._gate.auditor.record(
            SecurityEventType.TRANSCRIPT_GENERATED,
            user_id=requester.user_id,
            channel_id=session_id,
            messages=transcript.message_count,
        )
        return transcript

    async def _capture_transcript(self, session: Session) -> Transcript:
        try:
            history = await self._provider.fetch_message_history(
                session.channel_id, self._config.history_limit
            )
        except Exception as exc:
            raise ResourceError("fetch_message_history", str(exc), session.channel_id) from exc
        now = self._clock()
        return Transcript(
            session_id=session.channel_id,
            text=render_transcript(session.channel_id, history, now),
            message_count=len(history),
            generated_at=now,
        )

    def _archive(self, transcript: Transcript) -> Transcript:
        assert self._config.transcript_dir is not None
        try:
            path = archive_transcript(
                self._config.transcript_dir,
                transcript.session_id,
                transcript.text,
                transcript.generated_at,
            )
        except OSError as exc:
            log.error("transcript_archive_failed", session_id=transcript.session_id, error=str(exc))
            return transcript
        return Transcript(
            session_id=transcript.session_id,
            text=transcript.text,
            message_count=transcript.message_count,
            generated_at=transcript.generated_at,
            path=path,
        )

    # ---------------------------------------------------------------------------
    # Reconciliation
    # ---------------------------------------------------------------------------

    async def reconcile_orphans(self) -> list[str]:
        """Close every OPEN session whose channel no longer exists.

        Idempotent.  Provider lookups that fail are skipped for this sweep and
        sessions closed concurrently are treated as already reconciled.
        """
        closed: list[str] = []
        for session in await self._repo.list_open_sessions():
            try:
                exists = await self._provider.channel_exists(session.channel_id)
            except Exception as exc:
                log.warning("orphan_check_failed", channel_id=session.channel_id, error=str(exc))
                continue
            if exists:
                continue
            async with self._channel_locks.acquire(session.channel_id):
                result = await self._transition(
                    session,
                    closer_id=SYSTEM_ACTOR.user_id,
                    reason=ORPHAN_REASON,
                    grace=None,
                    transcript=None,
                )
            if result.performed:
                closed.append(session.channel_id)
        if closed:
            log.info("orphan_sessions_closed", count=len(closed))
        return closed

    async def rearm_open_sessions(self) -> int:
        """Re-arm idle timers after a restart, using the time already elapsed."""
        sessions = await self._repo.list_open_sessions()
        now = self._clock()
        for s in sessions:
            remaining = s.created_at + self._config.idle_timeout_seconds - now
            self._timers.arm_idle(s.channel_id, remaining, self._on_idle)
        log.info("idle_timers_rearmed", count=len(sessions))
        return len(sessions)

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    async def user_history(self, user_id: str, limit: int = 10) -> list[Session]:
        return await self._repo.list_user_sessions(user_id, limit)

    async def session_stats(self) -> SessionStats:
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return await self._repo.session_stats(midnight.timestamp())
