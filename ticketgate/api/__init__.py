"""API layer — FastAPI admin surface."""

from ticketgate.api.server import create_app

__all__ = ["create_app"]
