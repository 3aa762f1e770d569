"""GET /health — liveness plus the few numbers an operator checks first."""

from __future__ import annotations

import time

from fastapi import APIRouter

from ticketgate import __version__
from ticketgate.api.dependencies import RuntimeDep
from ticketgate.api.schemas import HealthResponse
from ticketgate.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health(runtime: RuntimeDep) -> HealthResponse:
    try:
        open_sessions = len(await runtime.repo.list_open_sessions())
    except Exception as exc:
        log.warning("health_session_count_failed", error=str(exc))
        open_sessions = 0

    return HealthResponse(
        status="halted" if runtime.gate.halted else "ok",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        halted=runtime.gate.halted,
        category_configured=runtime.sessions.category_id is not None,
        open_sessions=open_sessions,
        pending_confirmations=runtime.confirmations.pending_count,
    )
