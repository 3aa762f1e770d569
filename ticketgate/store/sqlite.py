"""SQLite-backed repository.

Design:
    - Single aiosqlite connection per repository instance
    - All I/O is async
    - Multi-statement writes serialised by one asyncio.Lock so that no other
      coroutine can commit half of a transaction on the shared connection
    - Monetary values stored as decimal TEXT, never REAL
    - No ORM dependency

Schema
------
``users``          one row per chat identity (blacklist flag + counters)
``tickets``        one row per session; ``channel_id`` unique; a partial
                   unique index allows at most one ``open`` row per user
``products``       catalog items (soft-deleted via ``is_active``)
``sales``          ledger entries
``security_logs``  append-only audit rows (JSON details)
``settings``       runtime key/value overrides
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from decimal import Decimal
from pathlib import Path
from typing import Any

import aiosqlite

from ticketgate.exceptions import AlreadyHasSessionError, StorageError
from ticketgate.logging import get_logger
from ticketgate.store.models import (
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

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id                  TEXT PRIMARY KEY,
    username            TEXT NOT NULL DEFAULT '',
    avatar              TEXT,
    is_blacklisted      INTEGER NOT NULL DEFAULT 0,
    total_tickets       INTEGER NOT NULL DEFAULT 0,
    total_purchases     INTEGER NOT NULL DEFAULT 0,
    created_at          REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS tickets (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    channel_id    TEXT NOT NULL UNIQUE,
    user_id       TEXT NOT NULL,
    product_id    INTEGER,
    status        TEXT NOT NULL DEFAULT 'open',
    created_at    REAL NOT NULL,
    closed_at     REAL,
    closed_by     TEXT,
    close_reason  TEXT
);
CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(status);
CREATE UNIQUE INDEX IF NOT EXISTS idx_tickets_one_open
    ON tickets(user_id) WHERE status = 'open';

CREATE TABLE IF NOT EXISTS products (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    name             TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    price            TEXT NOT NULL,
    image_url        TEXT,
    digital_content  TEXT,
    is_active        INTEGER NOT NULL DEFAULT 1,
    stock            INTEGER NOT NULL DEFAULT -1,
    sales_count      INTEGER NOT NULL DEFAULT 0,
    created_at       REAL NOT NULL,
    updated_at       REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS sales (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT NOT NULL,
    product_id      INTEGER NOT NULL,
    ticket_id       TEXT,
    amount          TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'pending',
    payment_method  TEXT,
    transaction_id  TEXT,
    created_at      REAL NOT NULL,
    completed_at    REAL
);
CREATE INDEX IF NOT EXISTS idx_sales_user ON sales(user_id, product_id, status);

CREATE TABLE IF NOT EXISTS security_logs (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type  TEXT NOT NULL,
    user_id     TEXT,
    details     TEXT NOT NULL DEFAULT '{}',
    created_at  REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_security_logs_type ON security_logs(event_type, created_at);

CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  REAL NOT NULL
);
"""


# ---------------------------------------------------------------------------
# Row mapping helpers
# ---------------------------------------------------------------------------


def _user_from_row(r: Any) -> User:
    return User(
        user_id=r["id"],
        display_name=r["username"],
        avatar=r["avatar"],
        is_blacklisted=bool(r["is_blacklisted"]),
        sessions_opened=r["total_tickets"],
        purchases_completed=r["total_purchases"],
        created_at=r["created_at"],
    )


def _session_from_row(r: Any) -> Session:
    return Session(
        channel_id=r["channel_id"],
        owner_id=r["user_id"],
        item_id=r["product_id"],
        status=SessionStatus(r["status"]),
        created_at=r["created_at"],
        closed_at=r["closed_at"],
        closed_by=r["closed_by"],
        close_reason=r["close_reason"],
        record_id=r["id"],
    )


def _item_from_row(r: Any) -> CatalogItem:
    return CatalogItem(
        item_id=r["id"],
        name=r["name"],
        description=r["description"],
        price=Decimal(r["price"]),
        image_url=r["image_url"],
        digital_payload=r["digital_content"],
        is_active=bool(r["is_active"]),
        stock=r["stock"],
        sales_count=r["sales_count"],
        created_at=r["created_at"],
        updated_at=r["updated_at"],
    )


def _sale_from_row(r: Any) -> Sale:
    keys = r.keys()
    return Sale(
        sale_id=r["id"],
        owner_id=r["user_id"],
        item_id=r["product_id"],
        session_id=r["ticket_id"],
        amount=Decimal(r["amount"]),
        status=SaleStatus(r["status"]),
        payment_method=r["payment_method"],
        transaction_ref=r["transaction_id"],
        created_at=r["created_at"],
        completed_at=r["completed_at"],
        item_name=r["product_name"] if "product_name" in keys else None,
    )


def _event_from_row(r: Any) -> SecurityEvent:
    return SecurityEvent(
        event_id=r["id"],
        event_type=r["event_type"],
        user_id=r["user_id"],
        details=json.loads(r["details"] or "{}"),
        created_at=r["created_at"],
    )


# ---------------------------------------------------------------------------
# SQLiteRepository
# ---------------------------------------------------------------------------


class SQLiteRepository(Repository):
    """Async SQLite repository.

    Usage::

        repo = SQLiteRepository(Path("~/.ticketgate/ticketgate.db"))
        await repo.init()

        user = await repo.upsert_user("42", "alice")
        session = await repo.insert_session(Session(channel_id="c1", owner_id="42"))
        performed = await repo.close_session_if_open("c1", "42", "done", time.time())

        await repo.close()
    """

    def __init__(self, db_path: Path) -> None:
        self._path = db_path.expanduser()
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database and create tables if needed."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self._path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()
        log.info("repository_initialized", path=str(self._path))

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def _fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> Any:
        assert self._conn is not None
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[Any]:
        assert self._conn is not None
        async with self._conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    async def _write(self, sql: str, params: tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        assert self._conn is not None
        async with self._write_lock:
            try:
                cursor = await self._conn.execute(sql, params)
                await self._conn.commit()
            except sqlite3.Error as exc:
                await self._conn.rollback()
                raise StorageError(f"Write failed: {exc}", context={"sql": sql.split()[0]}) from exc
        return cursor

    # ---------------------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------------------

    async def upsert_user(
        self, user_id: str, display_name: str, avatar: str | None = None
    ) -> User:
        await self._write(
            """
            INSERT INTO users (id, username, avatar, created_at)
            VALUES (?, ?, ?, strftime('%s','now'))
            ON CONFLICT(id) DO UPDATE SET
                username = excluded.username,
                avatar   = excluded.avatar
            """,
            (user_id, display_name, avatar),
        )
        user = await self.get_user(user_id)
        assert user is not None
        return user

    async def get_user(self, user_id: str) -> User | None:
        row = await self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        return _user_from_row(row) if row else None

    async def set_blacklisted(self, user_id: str, blacklisted: bool) -> None:
        await self._write(
            """
            INSERT INTO users (id, is_blacklisted, created_at)
            VALUES (?, ?, strftime('%s','now'))
            ON CONFLICT(id) DO UPDATE SET is_blacklisted = excluded.is_blacklisted
            """,
            (user_id, int(blacklisted)),
        )

    async def list_blacklisted(self) -> list[str]:
        rows = await self._fetchall("SELECT id FROM users WHERE is_blacklisted = 1")
        return [r["id"] for r in rows]

    async def increment_sessions_opened(self, user_id: str) -> None:
        await self._write(
            "UPDATE users SET total_tickets = total_tickets + 1 WHERE id = ?", (user_id,)
        )

    # ---------------------------------------------------------------------------
    # Sessions
    # ---------------------------------------------------------------------------

    async def insert_session(self, session: Session) -> Session:
        assert self._conn is not None
        async with self._write_lock:
            try:
                cursor = await self._conn.execute(
                    """
                    INSERT INTO tickets (channel_id, user_id, product_id, status, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        session.channel_id,
                        session.owner_id,
                        session.item_id,
                        SessionStatus.OPEN.value,
                        session.created_at,
                    ),
                )
                await self._conn.commit()
            except sqlite3.IntegrityError as exc:
                await self._conn.rollback()
                conflict = exc
            else:
                session.record_id = cursor.lastrowid
                session.status = SessionStatus.OPEN
                return session

        existing = await self.get_open_session(session.owner_id)
        if existing is not None:
            raise AlreadyHasSessionError(session.owner_id, existing)
        raise StorageError(
            f"Session insert rejected: {conflict}",
            context={"channel_id": session.channel_id},
        ) from conflict

    async def delete_session(self, channel_id: str) -> None:
        await self._write("DELETE FROM tickets WHERE channel_id = ?", (channel_id,))

    async def get_session(self, channel_id: str) -> Session | None:
        row = await self._fetchone("SELECT * FROM tickets WHERE channel_id = ?", (channel_id,))
        return _session_from_row(row) if row else None

    async def get_open_session(self, owner_id: str) -> Session | None:
        row = await self._fetchone(
            "SELECT * FROM tickets WHERE user_id = ? AND status = 'open'", (owner_id,)
        )
        return _session_from_row(row) if row else None

    async def close_session_if_open(
        self, channel_id: str, closed_by: str, reason: str, closed_at: float
    ) -> bool:
        cursor = await self._write(
            """
            UPDATE tickets
               SET status = 'closed', closed_at = ?, closed_by = ?, close_reason = ?
             WHERE channel_id = ? AND status = 'open'
            """,
            (closed_at, closed_by, reason, channel_id),
        )
        return cursor.rowcount == 1

    async def list_open_sessions(self) -> list[Session]:
        rows = await self._fetchall(
            "SELECT * FROM tickets WHERE status = 'open' ORDER BY created_at"
        )
        return [_session_from_row(r) for r in rows]

    async def list_user_sessions(self, owner_id: str, limit: int = 10) -> list[Session]:
        rows = await self._fetchall(
            "SELECT * FROM tickets WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (owner_id, limit),
        )
        return [_session_from_row(r) for r in rows]

    async def session_stats(self, since: float) -> SessionStats:
        row = await self._fetchone(
            """
            SELECT COUNT(*)                                         AS total,
                   COALESCE(SUM(status = 'open'), 0)                AS open,
                   COALESCE(SUM(status = 'closed'), 0)              AS closed,
                   COALESCE(SUM(created_at >= ?), 0)                AS created_today
              FROM tickets
            """,
            (since,),
        )
        return SessionStats(
            total=row["total"],
            open=row["open"],
            closed=row["closed"],
            created_today=row["created_today"],
        )

    # ---------------------------------------------------------------------------
    # Catalog
    # ---------------------------------------------------------------------------

    async def insert_item(self, item: CatalogItem) -> CatalogItem:
        cursor = await self._write(
            """
            INSERT INTO products
                (name, description, price, image_url, digital_content,
                 is_active, stock, sales_count, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.name,
                item.description,
                str(item.price),
                item.image_url,
                item.digital_payload,
                int(item.is_active),
                item.stock,
                item.sales_count,
                item.created_at,
                item.updated_at,
            ),
        )
        item.item_id = cursor.lastrowid
        return item

    async def update_item(self, item: CatalogItem) -> None:
        await self._write(
            """
            UPDATE products
               SET name = ?, description = ?, price = ?, image_url = ?,
                   digital_content = ?, is_active = ?, stock = ?, updated_at = ?
             WHERE id = ?
            """,
            (
                item.name,
                item.description,
                str(item.price),
                item.image_url,
                item.digital_payload,
                int(item.is_active),
                item.stock,
                item.updated_at,
                item.item_id,
            ),
        )

    async def get_item(self, item_id: int) -> CatalogItem | None:
        row = await self._fetchone("SELECT * FROM products WHERE id = ?", (item_id,))
        return _item_from_row(row) if row else None

    async def list_items(self, active_only: bool = True) -> list[CatalogItem]:
        sql = "SELECT * FROM products"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = await self._fetchall(sql + " ORDER BY created_at DESC, id DESC")
        return [_item_from_row(r) for r in rows]

    async def count_active_items(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) AS n FROM products WHERE is_active = 1")
        return row["n"]

    async def search_items(self, query: str) -> list[CatalogItem]:
        pattern = f"%{query}%"
        rows = await self._fetchall(
            """
            SELECT * FROM products
             WHERE is_active = 1 AND (name LIKE ? OR description LIKE ?)
             ORDER BY sales_count DESC, name
            """,
            (pattern, pattern),
        )
        return [_item_from_row(r) for r in rows]

    # ---------------------------------------------------------------------------
    # Sales
    # ---------------------------------------------------------------------------

    async def insert_sale(self, sale: Sale) -> Sale:
        cursor = await self._write(
            """
            INSERT INTO sales
                (user_id, product_id, ticket_id, amount, status,
                 payment_method, transaction_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sale.owner_id,
                sale.item_id,
                sale.session_id,
                str(sale.amount),
                sale.status.value,
                sale.payment_method,
                sale.transaction_ref,
                sale.created_at,
            ),
        )
        sale.sale_id = cursor.lastrowid
        return sale

    async def get_sale(self, sale_id: int) -> Sale | None:
        row = await self._fetchone(
            """
            SELECT s.*, p.name AS product_name
              FROM sales s LEFT JOIN products p ON p.id = s.product_id
             WHERE s.id = ?
            """,
            (sale_id,),
        )
        return _sale_from_row(row) if row else None

    async def complete_sale_if_pending(
        self,
        sale_id: int,
        completed_at: float,
        payment_method: str | None = None,
        transaction_ref: str | None = None,
    ) -> bool:
        assert self._conn is not None
        async with self._write_lock:
            try:
                cursor = await self._conn.execute(
                    """
                    UPDATE sales
                       SET status = 'completed', completed_at = ?,
                           payment_method = COALESCE(?, payment_method),
                           transaction_id = COALESCE(?, transaction_id)
                     WHERE id = ? AND status = 'pending'
                    """,
                    (completed_at, payment_method, transaction_ref, sale_id),
                )
                if cursor.rowcount != 1:
                    await self._conn.rollback()
                    return False
                await self._conn.execute(
                    """
                    UPDATE products
                       SET sales_count = sales_count + 1,
                           stock = CASE WHEN stock > 0 THEN stock - 1 ELSE stock END
                     WHERE id = (SELECT product_id FROM sales WHERE id = ?)
                    """,
                    (sale_id,),
                )
                await self._conn.execute(
                    """
                    UPDATE users SET total_purchases = total_purchases + 1
                     WHERE id = (SELECT user_id FROM sales WHERE id = ?)
                    """,
                    (sale_id,),
                )
                await self._conn.commit()
            except sqlite3.Error as exc:
                await self._conn.rollback()
                raise StorageError(
                    f"Sale completion failed: {exc}", context={"sale_id": sale_id}
                ) from exc
        return True

    async def cancel_sale_if_pending(self, sale_id: int) -> bool:
        cursor = await self._write(
            "UPDATE sales SET status = 'cancelled' WHERE id = ? AND status = 'pending'",
            (sale_id,),
        )
        return cursor.rowcount == 1

    async def has_completed_sale(self, user_id: str, item_id: int) -> bool:
        row = await self._fetchone(
            """
            SELECT 1 FROM sales
             WHERE user_id = ? AND product_id = ? AND status = 'completed'
             LIMIT 1
            """,
            (user_id, item_id),
        )
        return row is not None

    async def list_user_sales(self, user_id: str) -> list[Sale]:
        rows = await self._fetchall(
            """
            SELECT s.*, p.name AS product_name
              FROM sales s LEFT JOIN products p ON p.id = s.product_id
             WHERE s.user_id = ?
             ORDER BY s.created_at DESC, s.id DESC
            """,
            (user_id,),
        )
        return [_sale_from_row(r) for r in rows]

    async def sales_stats(self, top: int = 5) -> SalesStats:
        counts = await self._fetchone(
            """
            SELECT (SELECT COUNT(*) FROM products)                              AS total_items,
                   (SELECT COUNT(*) FROM products WHERE is_active = 1)          AS active_items,
                   (SELECT COUNT(*) FROM sales WHERE status = 'completed')      AS completed_sales,
                   (SELECT COUNT(*) FROM sales WHERE status = 'pending')        AS pending_sales
            """
        )
        amounts = await self._fetchall("SELECT amount FROM sales WHERE status = 'completed'")
        revenue = sum((Decimal(r["amount"]) for r in amounts), Decimal("0"))
        top_rows = await self._fetchall(
            "SELECT * FROM products ORDER BY sales_count DESC, id LIMIT ?", (top,)
        )
        return SalesStats(
            total_items=counts["total_items"],
            active_items=counts["active_items"],
            completed_sales=counts["completed_sales"],
            pending_sales=counts["pending_sales"],
            revenue=revenue,
            top_items=[_item_from_row(r) for r in top_rows],
        )

    # ---------------------------------------------------------------------------
    # Security events
    # ---------------------------------------------------------------------------

    async def add_security_event(self, event: SecurityEvent) -> SecurityEvent:
        cursor = await self._write(
            "INSERT INTO security_logs (event_type, user_id, details, created_at) VALUES (?, ?, ?, ?)",
            (event.event_type, event.user_id, json.dumps(event.details, default=str), event.created_at),
        )
        event.event_id = cursor.lastrowid
        return event

    async def list_security_events(
        self, event_type: str | None = None, limit: int = 50
    ) -> list[SecurityEvent]:
        if event_type is None:
            rows = await self._fetchall(
                "SELECT * FROM security_logs ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
            )
        else:
            rows = await self._fetchall(
                """
                SELECT * FROM security_logs WHERE event_type = ?
                 ORDER BY created_at DESC, id DESC LIMIT ?
                """,
                (event_type, limit),
            )
        return [_event_from_row(r) for r in rows]

    async def purge_security_events(self, older_than: float) -> int:
        cursor = await self._write(
            "DELETE FROM security_logs WHERE created_at < ?", (older_than,)
        )
        return cursor.rowcount

    # ---------------------------------------------------------------------------
    # Settings
    # ---------------------------------------------------------------------------

    async def get_setting(self, key: str) -> str | None:
        row = await self._fetchone("SELECT value FROM settings WHERE key = ?", (key,))
        return row["value"] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        await self._write(
            """
            INSERT INTO settings (key, value, updated_at) VALUES (?, ?, strftime('%s','now'))
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value),
        )
