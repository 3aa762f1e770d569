"""API routes for sales and per-user history.

REST endpoints::

    POST /sales/{sale_id}/complete       — PENDING → COMPLETED (admin)
    POST /sales/{sale_id}/cancel         — PENDING → CANCELLED (admin)
    GET  /users/{user_id}/purchases      — a user's sales, newest first
    GET  /users/{user_id}/sessions       — a user's recent sessions
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from ticketgate.api.dependencies import AdminDep, PurchasesDep, SessionsDep
from ticketgate.api.schemas import CompleteSaleRequest

router = APIRouter(tags=["sales"])


@router.post("/sales/{sale_id}/complete", summary="Mark a pending sale as paid")
async def complete_sale(
    sale_id: int,
    body: CompleteSaleRequest,
    admin_id: AdminDep,
    purchases: PurchasesDep,
) -> dict[str, Any]:
    sale = await purchases.complete_sale(
        sale_id,
        completed_by=admin_id,
        payment_method=body.payment_method,
        transaction_ref=body.transaction_ref,
    )
    return sale.to_dict()


@router.post("/sales/{sale_id}/cancel", summary="Cancel a pending sale")
async def cancel_sale(sale_id: int, admin_id: AdminDep, purchases: PurchasesDep) -> dict[str, Any]:
    return (await purchases.cancel_sale(sale_id, cancelled_by=admin_id)).to_dict()


@router.get("/users/{user_id}/purchases", summary="List a user's purchases")
async def user_purchases(user_id: str, _admin: AdminDep, purchases: PurchasesDep) -> list[dict[str, Any]]:
    return [s.to_dict() for s in await purchases.user_purchases(user_id)]


@router.get("/users/{user_id}/sessions", summary="List a user's recent sessions")
async def user_sessions(
    user_id: str,
    _admin: AdminDep,
    sessions: SessionsDep,
    limit: int = Query(default=10, ge=1, le=100),
) -> list[dict[str, Any]]:
    return [s.to_dict() for s in await sessions.user_history(user_id, limit=limit)]
