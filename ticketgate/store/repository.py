"""Store layer — Repository boundary.

The core never talks to a database directly.  Everything it persists goes
through this narrow interface so the backend can be swapped (SQLite for a
single process, something shared for larger deployments) without touching
the session or purchase logic.

Two primitives carry the concurrency guarantees the core depends on:

``insert_session``
    Conditional insert.  Raises ``AlreadyHasSessionError`` when the owner
    already holds an OPEN session, even if two callers race past the
    application-level check.

``close_session_if_open`` / ``complete_sale_if_pending`` / ``cancel_sale_if_pending``
    Atomic status-check-and-transition.  Return True only for the caller
    that actually performed the transition.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ticketgate.store.models import (
    CatalogItem,
    Sale,
    SalesStats,
    SecurityEvent,
    Session,
    SessionStats,
    User,
)


class Repository(ABC):
    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def init(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    async def upsert_user(
        self, user_id: str, display_name: str, avatar: str | None = None
    ) -> User:
        """Create the user or refresh its display fields.  Counters are kept."""

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def set_blacklisted(self, user_id: str, blacklisted: bool) -> None:
        """Persist the blacklist flag, creating a bare user row if needed."""

    @abstractmethod
    async def list_blacklisted(self) -> list[str]: ...

    @abstractmethod
    async def increment_sessions_opened(self, user_id: str) -> None: ...

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_session(self, session: Session) -> Session:
        """Insert an OPEN session.

        Raises:
            AlreadyHasSessionError: the owner already holds an OPEN session.
        """

    @abstractmethod
    async def delete_session(self, channel_id: str) -> None:
        """Physically remove a row.  Only used to roll back a failed creation."""

    @abstractmethod
    async def get_session(self, channel_id: str) -> Session | None: ...

    @abstractmethod
    async def get_open_session(self, owner_id: str) -> Session | None: ...

    @abstractmethod
    async def close_session_if_open(
        self, channel_id: str, closed_by: str, reason: str, closed_at: float
    ) -> bool: ...

    @abstractmethod
    async def list_open_sessions(self) -> list[Session]: ...

    @abstractmethod
    async def list_user_sessions(self, owner_id: str, limit: int = 10) -> list[Session]: ...

    @abstractmethod
    async def session_stats(self, since: float) -> SessionStats:
        """Counts by status; ``created_today`` counts sessions created after *since*."""

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_item(self, item: CatalogItem) -> CatalogItem: ...

    @abstractmethod
    async def update_item(self, item: CatalogItem) -> None: ...

    @abstractmethod
    async def get_item(self, item_id: int) -> CatalogItem | None: ...

    @abstractmethod
    async def list_items(self, active_only: bool = True) -> list[CatalogItem]: ...

    @abstractmethod
    async def count_active_items(self) -> int: ...

    @abstractmethod
    async def search_items(self, query: str) -> list[CatalogItem]: ...

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_sale(self, sale: Sale) -> Sale: ...

    @abstractmethod
    async def get_sale(self, sale_id: int) -> Sale | None: ...

    @abstractmethod
    async def complete_sale_if_pending(
        self,
        sale_id: int,
        completed_at: float,
        payment_method: str | None = None,
        transaction_ref: str | None = None,
    ) -> bool:
        """PENDING → COMPLETED plus counters and finite stock, in one transaction."""

    @abstractmethod
    async def cancel_sale_if_pending(self, sale_id: int) -> bool: ...

    @abstractmethod
    async def has_completed_sale(self, user_id: str, item_id: int) -> bool: ...

    @abstractmethod
    async def list_user_sales(self, user_id: str) -> list[Sale]: ...

    @abstractmethod
    async def sales_stats(self, top: int = 5) -> SalesStats: ...

    # ------------------------------------------------------------------
    # Security events
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_security_event(self, event: SecurityEvent) -> SecurityEvent: ...

    @abstractmethod
    async def list_security_events(
        self, event_type: str | None = None, limit: int = 50
    ) -> list[SecurityEvent]: ...

    @abstractmethod
    async def purge_security_events(self, older_than: float) -> int: ...

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_setting(self, key: str) -> str | None: ...

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None: ...
