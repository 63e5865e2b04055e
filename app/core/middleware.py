"""
Security Middleware for FastAPI
Adds security headers, request logging, and other protections.
"""

import logging
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings


logger = logging.getLogger("app.requests")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.
    Protects against common web vulnerabilities.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Generate unique request ID for tracing
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        # Usage counters and subscription state must never be cached
        if "/premium" in request.url.path or "/matching" in request.url.path:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"

        # HSTS - force HTTPS (only in production)
        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging all API requests.
    Useful for security auditing and debugging.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        request_id = getattr(request.state, "request_id", "N/A")

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000

        # Don't log health checks to reduce noise
        if request.url.path not in ["/", "/health", "/docs", "/openapi.json"]:
            logger.info(
                "%s %s - %s (%.2fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "request_id": request_id,
                    "client_ip": self._get_client_ip(request),
                    "user_agent": request.headers.get("User-Agent", "Unknown")[:100],
                },
            )

        return response

    def _get_client_ip(self, request: Request) -> str:
        """Extract real client IP from request."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        return request.client.host if request.client else "unknown"


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware to limit request body size.
    Prevents denial of service through large payloads.
    """

    MAX_BODY_SIZE = 1 * 1024 * 1024  # 1 MB, media goes to blob storage directly

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("Content-Length")

        if content_length and content_length.isdigit():
            if int(content_length) > self.MAX_BODY_SIZE:
                return Response(
                    content='{"detail": "Request body too large. Maximum size is 1MB."}',
                    status_code=413,
                    media_type="application/json",
                )

        return await call_next(request)
