"""API layer — FastAPI dependency injection.

The ``Runtime`` is created once at startup and injected via FastAPI's
dependency system.  Admin routes additionally require ``X-Actor-Id`` to name
a user on the static admin allow-list.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from ticketgate.commerce.catalog import CatalogService
from ticketgate.commerce.purchases import PurchaseService
from ticketgate.config import Settings
from ticketgate.runtime import Runtime
from ticketgate.security.gate import SecurityGate
from ticketgate.sessions.manager import SessionManager

HEADER_API_TOKEN = "X-TicketGate-Token"
HEADER_ACTOR_ID = "X-Actor-Id"


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime  # type: ignore[no-any-return]


def get_config(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def get_gate(request: Request) -> SecurityGate:
    return request.app.state.runtime.gate  # type: ignore[no-any-return]


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.runtime.sessions  # type: ignore[no-any-return]


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.runtime.catalog  # type: ignore[no-any-return]


def get_purchases(request: Request) -> PurchaseService:
    return request.app.state.runtime.purchases  # type: ignore[no-any-return]


async def verify_api_token(
    request: Request,
    x_ticketgate_token: Annotated[str | None, Header(alias=HEADER_API_TOKEN)] = None,
) -> None:
    """Verify the API token if one is configured."""
    settings: Settings = request.app.state.settings
    expected = settings.server.api_token

    if expected is None:
        return  # No auth configured: local-only mode.

    if x_ticketgate_token != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin_actor(
    request: Request,
    _: Annotated[None, Depends(verify_api_token)],
    x_actor_id: Annotated[str | None, Header(alias=HEADER_ACTOR_ID)] = None,
) -> str:
    """Return the acting admin's user ID; raises ``NotAdminError`` otherwise."""
    gate: SecurityGate = request.app.state.runtime.gate
    gate.require_admin(x_actor_id or "")
    return x_actor_id or ""


# Shorthand type aliases for route signatures.
RuntimeDep = Annotated[Runtime, Depends(get_runtime)]
ConfigDep = Annotated[Settings, Depends(get_config)]
GateDep = Annotated[SecurityGate, Depends(get_gate)]
SessionsDep = Annotated[SessionManager, Depends(get_sessions)]
CatalogDep = Annotated[CatalogService, Depends(get_catalog)]
PurchasesDep = Annotated[PurchaseService, Depends(get_purchases)]
AuthDep = Annotated[None, Depends(verify_api_token)]
AdminDep = Annotated[str, Depends(require_admin_actor)]
