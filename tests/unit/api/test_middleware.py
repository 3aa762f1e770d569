"""Unit tests — API middleware (RequestIDMiddleware, AccessLogMiddleware, error handler)."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ticketgate.api.middleware import AccessLogMiddleware, RequestIDMiddleware, build_error_handler
from ticketgate.exceptions import (
    AlreadyHasSessionError,
    BlacklistedError,
    CategoryNotConfiguredError,
    RateLimitedError,
    ResourceError,
    TicketGateError,
)


def _make_test_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_exception_handler(TicketGateError, build_error_handler())

    @app.get("/ok")
    async def ok() -> dict:
        return {"status": "ok"}

    @app.get("/error/blacklisted")
    async def blacklisted():
        raise BlacklistedError("u1")

    @app.get("/error/limited")
    async def limited():
        raise RateLimitedError("u1", "commands", 42)

    @app.get("/error/conflict")
    async def conflict():
        raise AlreadyHasSessionError("u1")

    @app.get("/error/resource")
    async def resource():
        raise ResourceError("create_channel", "timeout")

    @app.get("/error/config")
    async def config():
        raise CategoryNotConfiguredError()

    @app.get("/error/internal")
    async def internal():
        raise TicketGateError("unexpected failure")

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_make_test_app(), raise_server_exceptions=False)


@pytest.mark.unit
class TestRequestIDMiddleware:
    def test_request_id_injected_in_response(self, client: TestClient) -> None:
        assert "X-Request-ID" in client.get("/ok").headers

    def test_custom_request_id_echoed(self, client: TestClient) -> None:
        resp = client.get("/ok", headers={"X-Request-ID": "rid-123"})
        assert resp.headers["X-Request-ID"] == "rid-123"


@pytest.mark.unit
class TestErrorHandler:
    @pytest.mark.parametrize(
        "path,status,code",
        [
            ("/error/blacklisted", 403, "BLACKLISTED"),
            ("/error/limited", 429, "RATE_LIMITED"),
            ("/error/conflict", 409, "ALREADY_HAS_SESSION"),
            ("/error/resource", 502, "RESOURCE_FAILURE"),
            ("/error/config", 503, "CATEGORY_NOT_CONFIGURED"),
            ("/error/internal", 500, "INTERNAL"),
        ],
    )
    def test_status_mapping(self, client: TestClient, path: str, status: int, code: str) -> None:
        resp = client.get(path, headers={"X-Request-ID": "rid-1"})
        assert resp.status_code == status
        body = resp.json()
        assert body["code"] == code
        assert body["request_id"] == "rid-1"

    def test_retry_after_on_rate_limit(self, client: TestClient) -> None:
        assert client.get("/error/limited").headers["Retry-After"] == "42"
