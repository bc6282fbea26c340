"""
HTTP middleware — security headers and request timing for every response.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

# Responses under this prefix may carry access tokens
_NO_STORE_PREFIX = "/api/"


def register_middleware(app: FastAPI) -> None:
    """Attach the broker's response middleware to *app*."""

    @app.middleware("http")
    async def secure_response(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        for name, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.path.startswith(_NO_STORE_PREFIX):
            response.headers.setdefault("Cache-Control", "no-store")
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"

        # Path only: callback query strings carry codes and state.
        logger.debug(
            "%s %s -> %d (%.3fs)",
            request.method, request.url.path, response.status_code, elapsed,
        )
        return response
