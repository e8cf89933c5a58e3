"""Boundary middleware: request logging, rate limiting and security headers."""

from __future__ import annotations

import logging
from typing import Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger("landing.http")

RATE_LIMIT_MESSAGE = "Too many requests, please try again later"

SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
}


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        logger.info(
            "%s %s",
            request.method,
            request.url.path,
            extra={"ip": client_address(request), "user_agent": request.headers.get("user-agent")},
        )
        return await call_next(request)


def build_rate_limiter(*, window: int, max_requests: int) -> Limiter:
    """One counter per client address, shared by every route."""

    if max_requests < 1:
        raise ValueError("max_requests must be at least 1")
    return Limiter(
        key_func=get_remote_address,
        application_limits=[f"{max_requests}/{window} seconds"],
        headers_enabled=True,
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    # Called synchronously by SlowAPIMiddleware, so this must not be a coroutine.
    logger.warning("Rate limit exceeded for %s on %s", client_address(request), request.url.path)
    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"success": False, "message": RATE_LIMIT_MESSAGE},
    )
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


__all__ = [
    "RATE_LIMIT_MESSAGE",
    "RequestLogMiddleware",
    "SecurityHeadersMiddleware",
    "build_rate_limiter",
    "client_address",
    "rate_limit_exceeded_handler",
]
