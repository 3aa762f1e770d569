"""Store layer — domain records, repository boundary, SQLite implementation."""

from ticketgate.store.models import (
    UNLIMITED_STOCK,
    CatalogItem,
    Sale,
    SalesStats,
    SaleStatus,
    SecurityEvent,
    Session,
    SessionStats,
    SessionStatus,
    User,
)
from ticketgate.store.repository import Repository
from ticketgate.store.sqlite import SQLiteRepository

__all__ = [
    "CatalogItem",
    "Repository",
    "SQLiteRepository",
    "Sale",
    "SaleStatus",
    "SalesStats",
    "SecurityEvent",
    "Session",
    "SessionStats",
    "SessionStatus",
    "UNLIMITED_STOCK",
    "User",
]
