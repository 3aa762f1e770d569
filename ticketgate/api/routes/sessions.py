"""API routes for session oversight.

REST endpoints::

    GET  /sessions                       — open sessions
    GET  /sessions/stats                 — totals and today's count
    POST /sessions/{session_id}/close    — staff close          (admin)
    POST /sessions/reconcile             — close orphans now    (admin)
    PUT  /setup/channels                 — ticket category + products channel (admin)
    POST /setup/products                 — post the storefront  (admin)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from ticketgate.api.dependencies import AdminDep, AuthDep, RuntimeDep, SessionsDep
from ticketgate.api.schemas import ChannelSetupRequest, CloseSessionRequest, PublishCatalogRequest
from ticketgate.security.models import Actor

router = APIRouter(tags=["sessions"])


@router.get("/sessions", summary="List open sessions")
async def list_open_sessions(_auth: AuthDep, runtime: RuntimeDep) -> list[dict[str, Any]]:
    return [s.to_dict() for s in await runtime.repo.list_open_sessions()]


@router.get("/sessions/stats", summary="Session statistics")
async def session_stats(_auth: AuthDep, sessions: SessionsDep) -> dict[str, Any]:
    return (await sessions.session_stats()).to_dict()


@router.post("/sessions/{session_id}/close", summary="Close a session as staff")
async def close_session(
    session_id: str,
    body: CloseSessionRequest,
    admin_id: AdminDep,
    sessions: SessionsDep,
) -> dict[str, Any]:
    closer = Actor(user_id=admin_id, display_name=admin_id, is_staff=True)
    result = await sessions.close_session(session_id, closer, body.reason)
    return {
        "performed": result.performed,
        "session": result.session.to_dict(),
        "transcript_path": str(result.transcript.path) if result.transcript and result.transcript.path else None,
    }


@router.post("/sessions/reconcile", summary="Close sessions whose channel is gone")
async def reconcile(_admin: AdminDep, sessions: SessionsDep) -> dict[str, Any]:
    closed = await sessions.reconcile_orphans()
    return {"closed": closed, "count": len(closed)}


@router.put("/setup/channels", summary="Configure ticket and product channels")
async def setup_channels(body: ChannelSetupRequest, _admin: AdminDep, runtime: RuntimeDep) -> dict[str, Any]:
    await runtime.configure_channels(body.category_id, body.products_channel_id)
    return {
        "category_id": runtime.sessions.category_id,
        "products_channel_id": runtime.products_channel_id,
    }


@router.post("/setup/products", summary="Post the product storefront")
async def setup_products(body: PublishCatalogRequest, _admin: AdminDep, runtime: RuntimeDep) -> dict[str, Any]:
    items = await runtime.publish_catalog(body.channel_id)
    return {"channel_id": runtime.products_channel_id, "items": items}
