"""API layer — Request and response schemas.

These are the external API contracts.  They are intentionally separate from
the store dataclasses so the admin surface can evolve without touching the
persistence layer.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from ticketgate.store.models import UNLIMITED_STOCK


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateItemRequest(BaseModel):
    """POST /catalog — Add a product to the catalog."""

    name: str
    price: Decimal = Field(description="Unit price, two decimal places.")
    description: str | None = None
    image_url: str | None = None
    digital_content: str | None = Field(
        default=None,
        description="Delivered to buyers after completion. Stored encrypted.",
    )
    stock: int = Field(default=UNLIMITED_STOCK, description="-1 = unlimited.")


class UpdateItemRequest(BaseModel):
    """PATCH /catalog/{item_id} — Only the fields that are set are changed."""

    name: str | None = None
    price: Decimal | None = None
    description: str | None = None
    image_url: str | None = None
    digital_content: str | None = None
    stock: int | None = None


class CompleteSaleRequest(BaseModel):
    payment_method: str | None = None
    transaction_ref: str | None = None


class BlacklistRequest(BaseModel):
    user_id: str
    reason: str = Field(default="No reason given", max_length=500)


class CloseSessionRequest(BaseModel):
    reason: str = Field(default="closed by staff", max_length=500)


class ChannelSetupRequest(BaseModel):
    """PUT /setup/channels — Runtime channel configuration."""

    category_id: str
    products_channel_id: str | None = None


class PublishCatalogRequest(BaseModel):
    """POST /setup/products — Post the storefront; optionally switch channel first."""

    channel_id: str | None = None


class IssueTokenRequest(BaseModel):
    data: Any
    ttl_seconds: int | None = Field(default=None, ge=1, le=604_800)


class VerifyTokenRequest(BaseModel):
    token: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    uptime_seconds: float
    halted: bool = Field(default=False, description="True once the integrity monitor has tripped.")
    category_configured: bool
    open_sessions: int = 0
    pending_confirmations: int = 0


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: Any | None = None
    request_id: str | None = None


class BlacklistResponse(BaseModel):
    user_id: str
    blacklisted: bool
    changed: bool


class TokenResponse(BaseModel):
    token: str


class TokenVerificationResponse(BaseModel):
    valid: bool
    payload: Any = None
    failure: str | None = None


class SelfTestResponse(BaseModel):
    passed: bool
    checks: list[dict[str, Any]]
