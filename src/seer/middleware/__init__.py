"""Middleware registration."""

from fastapi import FastAPI

from seer.config import Settings
from seer.middleware.cors import setup_cors
from seer.middleware.error_handler import setup_error_handlers
from seer.middleware.logging import setup_logging
from seer.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware. CORS is added last so it is outermost."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
