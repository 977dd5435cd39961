"""Middleware registration."""

from fastapi import FastAPI

from commonly.config import Settings
from commonly.middleware.cors import setup_cors
from commonly.middleware.error_handler import setup_error_handlers
from commonly.middleware.logging import setup_logging
from commonly.middleware.rate_limit import RateLimitMiddleware
from commonly.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware. Starlette runs them last-added first, so CORS goes on last to wrap 429s."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
