"""Middleware registration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from questline.config import Settings
from questline.middleware.error_handler import setup_error_handlers
from questline.middleware.logging import setup_logging
from questline.middleware.rate_limit import (
    LIMIT_HEADER,
    REMAINING_HEADER,
    RETRY_AFTER_HEADER,
    RateLimitMiddleware,
)
from questline.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware

# Quest clients are anonymous wallets; no cookies cross origins
_CORS_METHODS = ["GET", "POST", "PUT", "OPTIONS"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and middleware.

    Starlette runs middleware in reverse-add order. Request ids wrap the
    limiter so 429s are tagged, and CORS is outermost so browsers can read
    those 429s and their headers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=_CORS_METHODS,
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, REMAINING_HEADER, LIMIT_HEADER, RETRY_AFTER_HEADER],
    )
