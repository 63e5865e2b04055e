"""
Domain errors raised by the services and rendered at the request boundary.

Every error carries a human readable ``detail``. Entitlement denials also carry
``reason``, ``limit`` and ``used`` so the mobile client can render upgrade prompts.
"""

from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        return {"detail": self.detail}


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        detail: str,
        reason: Optional[str] = None,
        limit: Optional[int] = None,
        used: Optional[int] = None,
        is_premium_required: bool = False,
    ):
        super().__init__(detail)
        self.reason = reason
        self.limit = limit
        self.used = used
        self.is_premium_required = is_premium_required

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.limit is not None:
            payload["limit"] = self.limit
        if self.used is not None:
            payload["used"] = self.used
        if self.is_premium_required:
            payload["is_premium_required"] = True
        return payload


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


class ValidationError(AppError):
    status_code = 422


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error as a structured JSON payload."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
