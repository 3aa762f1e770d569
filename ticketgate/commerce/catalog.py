"""Commerce layer — Catalog administration.

Products are never physically removed: deleting one deactivates it so that
every historical sale keeps a valid reference.  Digital payloads are
encrypted through the SecurityGate before they reach the repository and are
never returned by listing calls.

The storefront in the products channel lists every active item with one
``buy_product:<id>`` action per in-stock item, and is re-posted after each
catalog change and each completed sale.
"""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation
from typing import Any

from ticketgate.exceptions import (
    CatalogFullError,
    ConfigurationError,
    ItemNotFoundError,
    ResourceError,
    ValidationError,
)
from ticketgate.logging import get_logger
from ticketgate.platform.provider import ChannelProvider
from ticketgate.security.gate import SecurityGate
from ticketgate.store.models import UNLIMITED_STOCK, CatalogItem, SalesStats
from ticketgate.store.repository import Repository

log = get_logger(__name__)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

_UPDATABLE = frozenset({"name", "description", "price", "image_url", "digital_content", "stock"})

BUY_PREFIX = "buy_product"


def _parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("price", "Price must be a number.") from exc
    if not price.is_finite() or price < 0:
        raise ValidationError("price", "Price must be zero or positive.")
    return price.quantize(Decimal("0.01"))


def _validate_name(name: str | None) -> str:
    if name is None or not name.strip():
        raise ValidationError("name", "Product name is required.")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError("name", f"Product name must be at most {MAX_NAME_LENGTH} characters.")
    return name.strip()


def _validate_description(description: str | None) -> str:
    description = description or ""
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            "description", f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters."
        )
    return description


def _validate_stock(stock: int) -> int:
    if stock != UNLIMITED_STOCK and stock < 0:
        raise ValidationError("stock", "Stock must be -1 (unlimited) or a non-negative integer.")
    return stock


# ---------------------------------------------------------------------------
# Storefront
# ---------------------------------------------------------------------------


def render_catalog(items: list[CatalogItem], currency: str) -> tuple[str, list[str]]:
    """Storefront text plus one ``buy_product:<id>`` action per in-stock item."""
    lines = [
        "**Product catalog**",
        "Select a product below to open a purchase ticket. One active ticket per user.",
        "",
    ]
    actions: list[str] = []
    if not items:
        lines.append("No products available yet.")
    for index, item in enumerate(items, start=1):
        stock = "∞" if item.has_unlimited_stock else str(item.stock)
        line = f"{index}. {item.name}: {currency} {item.price:.2f} | stock: {stock}"
        if item.stock == 0:
            line += " (out of stock)"
        else:
            actions.append(f"{BUY_PREFIX}:{item.item_id}")
        lines.append(line)
        if item.description:
            lines.append(f"   {item.description}")
    return "\n".join(lines), actions


class CatalogPublisher:
    """Posts the active catalog to the products channel.

    ``publish`` raises; ``refresh`` is the best-effort variant called after
    every catalog or stock change and only logs failures.
    """

    def __init__(
        self,
        repo: Repository,
        provider: ChannelProvider,
        currency: str = "BRL",
        max_items: int = 30,
        channel_id: str | None = None,
    ) -> None:
        self._repo = repo
        self._provider = provider
        self._currency = currency
        self._max_items = max_items
        self.channel_id = channel_id

    async def publish(self) -> int:
        """Post the storefront and return how many items it lists."""
        if not self.channel_id:
            raise ConfigurationError(
                "Products channel is not configured",
                user_message="The products channel is not configured. Run the channel setup first.",
            )
        items = (await self._repo.list_items(active_only=True))[: self._max_items]
        content, actions = render_catalog(items, self._currency)
        try:
            await self._provider.send_message(self.channel_id, content, actions)
        except Exception as exc:
            raise ResourceError("send_message", str(exc), self.channel_id) from exc
        log.info("catalog_published", channel_id=self.channel_id, items=len(items))
        return len(items)

    async def refresh(self) -> None:
        if not self.channel_id:
            log.debug("catalog_publish_skipped", reason="no products channel")
            return
        try:
            await self.publish()
        except ResourceError as exc:
            log.error("catalog_publish_failed", channel_id=self.channel_id, error=exc.message)


class CatalogService:
    def __init__(
        self,
        repo: Repository,
        gate: SecurityGate,
        max_items: int = 30,
        publisher: CatalogPublisher | None = None,
    ) -> None:
        self._repo = repo
        self._gate = gate
        self._max_items = max_items
        self._publisher = publisher

    async def _refresh_display(self) -> None:
        if self._publisher is not None:
            await self._publisher.refresh()

    async def create_item(
        self,
        name: str,
        price: Any,
        description: str | None = None,
        image_url: str | None = None,
        digital_content: str | None = None,
        stock: int = UNLIMITED_STOCK,
    ) -> CatalogItem:
        item = CatalogItem(
            name=_validate_name(name),
            price=_parse_price(price),
            description=_validate_description(description),
            image_url=image_url or None,
            digital_payload=self._gate.encrypt(digital_content) if digital_content else None,
            stock=_validate_stock(stock),
        )
        if await self._repo.count_active_items() >= self._max_items:
            raise CatalogFullError(self._max_items)
        item = await self._repo.insert_item(item)
        log.info("catalog_item_created", item_id=item.item_id, name=item.name, price=str(item.price))
        await self._refresh_display()
        return item

    async def update_item(self, item_id: int, **changes: Any) -> CatalogItem:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValidationError(sorted(unknown)[0], "Field cannot be updated.")
        item = await self._repo.get_item(item_id)
        if item is None or not item.is_active:
            raise ItemNotFoundError(item_id)

        if "name" in changes:
            item.name = _validate_name(changes["name"])
        if "description" in changes:
            item.description = _validate_description(changes["description"])
        if "price" in changes:
            item.price = _parse_price(changes["price"])
        if "image_url" in changes:
            item.image_url = changes["image_url"] or None
        if "stock" in changes:
            item.stock = _validate_stock(int(changes["stock"]))
        if "digital_content" in changes:
            content = changes["digital_content"]
            item.digital_payload = self._gate.encrypt(content) if content else None
        item.updated_at = time.time()

        await self._repo.update_item(item)
        log.info("catalog_item_updated", item_id=item_id, fields=sorted(changes))
        await self._refresh_display()
        return item

    async def delete_item(self, item_id: int) -> CatalogItem:
        """Soft delete: the item stops being offered but stays referenced by sales."""
        item = await self._repo.get_item(item_id)
        if item is None or not item.is_active:
            raise ItemNotFoundError(item_id)
        item.is_active = False
        item.updated_at = time.time()
        await self._repo.update_item(item)
        log.info("catalog_item_deactivated", item_id=item_id)
        await self._refresh_display()
        return item

    async def get_item(self, item_id: int) -> CatalogItem:
        item = await self._repo.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    async def list_items(self, active_only: bool = True) -> list[CatalogItem]:
        return await self._repo.list_items(active_only=active_only)

    async def search(self, query: str) -> list[CatalogItem]:
        return await self._repo.search_items(query.strip())

    async def stats(self) -> SalesStats:
        return await self._repo.sales_stats(top=5)
