"""API routes for security administration.

REST endpoints::

    GET    /security/blacklist              — blacklisted user IDs
    POST   /security/blacklist              — add a user
    DELETE /security/blacklist/{user_id}    — remove a user
    GET    /security/events                 — recent audit events
    POST   /security/tokens                 — issue a signed token
    POST   /security/tokens/verify          — verify a signed token
    POST   /security/cleanup                — retention purge + orphan sweep
    GET    /security/self-test              — encryption/token/integrity/limiter checks

Every endpoint requires an admin actor.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from ticketgate.api.dependencies import AdminDep, GateDep, RuntimeDep
from ticketgate.api.schemas import (
    BlacklistRequest,
    BlacklistResponse,
    IssueTokenRequest,
    SelfTestResponse,
    TokenResponse,
    TokenVerificationResponse,
    VerifyTokenRequest,
)

router = APIRouter(prefix="/security", tags=["security"])


# ---------------------------------------------------------------------------
# Blacklist
# ---------------------------------------------------------------------------


@router.get("/blacklist", summary="List blacklisted users")
async def list_blacklist(_admin: AdminDep, gate: GateDep) -> list[str]:
    return gate.context.blacklisted()


@router.post("/blacklist", response_model=BlacklistResponse, summary="Blacklist a user")
async def add_to_blacklist(body: BlacklistRequest, admin_id: AdminDep, gate: GateDep) -> BlacklistResponse:
    changed = await gate.blacklist(body.user_id, body.reason, actor_id=admin_id)
    return BlacklistResponse(user_id=body.user_id, blacklisted=True, changed=changed)


@router.delete("/blacklist/{user_id}", response_model=BlacklistResponse, summary="Remove a user from the blacklist")
async def remove_from_blacklist(user_id: str, admin_id: AdminDep, gate: GateDep) -> BlacklistResponse:
    changed = await gate.unblacklist(user_id, actor_id=admin_id)
    return BlacklistResponse(user_id=user_id, blacklisted=False, changed=changed)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


@router.get("/events", summary="Recent security events")
async def list_events(
    _admin: AdminDep,
    runtime: RuntimeDep,
    event_type: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
) -> list[dict[str, Any]]:
    events = await runtime.repo.list_security_events(event_type=event_type, limit=limit)
    return [e.to_dict() for e in events]


@router.post("/cleanup", summary="Purge expired events and close orphaned sessions")
async def cleanup(_admin: AdminDep, runtime: RuntimeDep) -> dict[str, Any]:
    report = await runtime.maintenance.run_cleanup()
    return report.to_dict()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@router.post("/tokens", response_model=TokenResponse, summary="Issue a signed token")
async def issue_token(body: IssueTokenRequest, _admin: AdminDep, gate: GateDep) -> TokenResponse:
    return TokenResponse(token=gate.issue_token(body.data, ttl=body.ttl_seconds))


@router.post("/tokens/verify", response_model=TokenVerificationResponse, summary="Verify a signed token")
async def verify_token(body: VerifyTokenRequest, _admin: AdminDep, gate: GateDep) -> TokenVerificationResponse:
    result = gate.verify_token(body.token)
    return TokenVerificationResponse(
        valid=result.valid,
        payload=result.payload,
        failure=result.failure.value if result.failure else None,
    )


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@router.get("/self-test", response_model=SelfTestResponse, summary="Run the security self-test")
async def self_test(_admin: AdminDep, gate: GateDep) -> SelfTestResponse:
    checks = await gate.self_test()
    return SelfTestResponse(passed=all(c.passed for c in checks), checks=[c.to_dict() for c in checks])
