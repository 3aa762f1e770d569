"""Store layer — Domain records.

All persisted state is represented with plain dataclasses so that it can be
written to SQLite without an ORM and serialised to the API with ``to_dict``.

Key classes
-----------
User           — chat identity, blacklist flag, counters
Session        — one ticket channel; identity is the channel ID
CatalogItem    — sellable product with optional encrypted payload
Sale           — ledger entry PENDING → COMPLETED | CANCELLED
SecurityEvent  — append-only audit record

Timestamps are Unix epoch floats.  Monetary amounts are ``Decimal``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SessionStatus(str, Enum):
    """Lifecycle state of a Session.

    State machine::

        OPEN ──close / idle-timeout / orphan──► CLOSED  (terminal)
    """

    OPEN = "open"
    CLOSED = "closed"


class SaleStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


UNLIMITED_STOCK = -1


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class User:
    user_id: str
    display_name: str = ""
    avatar: str | None = None
    is_blacklisted: bool = False
    sessions_opened: int = 0
    purchases_completed: int = 0
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "avatar": self.avatar,
            "is_blacklisted": self.is_blacklisted,
            "sessions_opened": self.sessions_opened,
            "purchases_completed": self.purchases_completed,
            "created_at": self.created_at,
        }


@dataclass
class Session:
    """A ticket.  ``channel_id`` is both the identity and the external resource."""

    channel_id: str
    owner_id: str
    item_id: int | None = None
    status: SessionStatus = SessionStatus.OPEN
    created_at: float = field(default_factory=time.time)
    closed_at: float | None = None
    closed_by: str | None = None
    close_reason: str | None = None
    record_id: int | None = None

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.OPEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "owner_id": self.owner_id,
            "item_id": self.item_id,
            "status": self.status.value,
            "created_at": self.created_at,
            "closed_at": self.closed_at,
            "closed_by": self.closed_by,
            "close_reason": self.close_reason,
        }


@dataclass
class CatalogItem:
    name: str
    price: Decimal
    description: str = ""
    image_url: str | None = None
    digital_payload: str | None = None  # cipher envelope, never plaintext
    is_active: bool = True
    stock: int = UNLIMITED_STOCK
    sales_count: int = 0
    item_id: int | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def has_unlimited_stock(self) -> bool:
        return self.stock == UNLIMITED_STOCK

    @property
    def is_purchasable(self) -> bool:
        return self.is_active and self.stock != 0

    @property
    def has_digital_content(self) -> bool:
        return bool(self.digital_payload)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "image_url": self.image_url,
            "has_digital_content": self.has_digital_content,
            "is_active": self.is_active,
            "stock": self.stock,
            "sales_count": self.sales_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Sale:
    owner_id: str
    item_id: int
    amount: Decimal
    session_id: str | None = None
    status: SaleStatus = SaleStatus.PENDING
    payment_method: str | None = None
    transaction_ref: str | None = None
    created_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    sale_id: int | None = None
    # Joined from products for listings; not persisted on the sale row.
    item_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sale_id": self.sale_id,
            "owner_id": self.owner_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "session_id": self.session_id,
            "amount": str(self.amount),
            "status": self.status.value,
            "payment_method": self.payment_method,
            "transaction_ref": self.transaction_ref,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }


@dataclass
class SecurityEvent:
    event_type: str
    user_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    event_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "user_id": self.user_id,
            "details": self.details,
            "created_at": self.created_at,
        }


@dataclass
class SessionStats:
    total: int = 0
    open: int = 0
    closed: int = 0
    created_today: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "open": self.open,
            "closed": self.closed,
            "created_today": self.created_today,
        }


@dataclass
class SalesStats:
    total_items: int = 0
    active_items: int = 0
    completed_sales: int = 0
    pending_sales: int = 0
    revenue: Decimal = Decimal("0")
    top_items: list[CatalogItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_items": self.total_items,
            "active_items": self.active_items,
            "completed_sales": self.completed_sales,
            "pending_sales": self.pending_sales,
            "revenue": str(self.revenue),
            "top_items": [
                {"item_id": i.item_id, "name": i.name, "sales_count": i.sales_count}
                for i in self.top_items
            ],
        }
