"""Shared HTTP client for commands that talk to a running service."""

from __future__ import annotations

import httpx

from ticketgate.api.dependencies import HEADER_ACTOR_ID, HEADER_API_TOKEN


def client(host: str, port: int, token: str | None = None, actor: str | None = None) -> httpx.Client:
    headers: dict[str, str] = {}
    if token:
        headers[HEADER_API_TOKEN] = token
    if actor:
        headers[HEADER_ACTOR_ID] = actor
    return httpx.Client(base_url=f"http://{host}:{port}", headers=headers, timeout=10.0)
