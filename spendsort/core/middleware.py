"""HTTP middleware: request ids, access logging and response headers."""
from __future__ import annotations

import logging
import re
import secrets
import time
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from spendsort.core.config import settings
from spendsort.core.logging_config import request_id_ctx

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Shape accepted for client-supplied request ids.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_QUIET_PATHS = ("/api/health",)
_DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")

CallNext = Callable[[Request], Awaitable[Response]]


def _incoming_request_id(request: Request) -> str:
    supplied = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_PATTERN.match(supplied):
        return supplied
    return secrets.token_hex(8)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Give every request an id, time it and write one access line."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception:  # noqa: BLE001
                logger.exception("Unhandled error for %s %s", request.method, request.url.path)
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"

            if not request.url.path.startswith(_QUIET_PATHS):
                level = logging.WARNING if response.status_code >= 500 else logging.INFO
                logger.log(
                    level,
                    "%s %s -> %s in %.1fms (client=%s)",
                    request.method,
                    request.url.path,
                    response.status_code,
                    elapsed_ms,
                    request.client.host if request.client else "unknown",
                )
            return response
        finally:
            request_id_ctx.reset(token)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Headers for a JSON-only API; the interactive docs keep their own policy."""

    def __init__(self, app: ASGIApp, hsts_max_age: int = 31536000) -> None:
        super().__init__(app)
        self._hsts = f"max-age={hsts_max_age}; includeSubDomains"

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        headers = response.headers

        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("Referrer-Policy", "no-referrer")
        headers.setdefault("Cache-Control", "no-store")
        if not request.url.path.startswith(_DOCS_PATHS):
            headers.setdefault("X-Frame-Options", "DENY")
            headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        if settings.ENV.lower() == "production":
            headers.setdefault("Strict-Transport-Security", self._hsts)

        return response


__all__ = ["REQUEST_ID_HEADER", "RequestContextMiddleware", "SecurityHeadersMiddleware"]
