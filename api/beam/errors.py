"""
Domain error taxonomy.

Services raise these; the handler registered in ``main`` turns them into JSON
responses so routes stay thin and nothing escapes as an unhandled exception.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BeamError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, **extra: Any) -> None:
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, **self.extra}


class NotFound(BeamError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Forbidden(BeamError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You don't have permission to access this resource"


class PrivateGallery(Forbidden):
    """Gallery exists but the caller has no role on it."""

    default_detail = "This gallery is private"

    def __init__(self, requires_auth: bool, detail: str | None = None) -> None:
        super().__init__(detail, isPrivate=True, requiresAuth=requires_auth)


class Unauthorized(BeamError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"


class ValidationError(BeamError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"

    def __init__(self, detail: str | None = None, field: str | None = None) -> None:
        if field:
            super().__init__(detail, field=field)
        else:
            super().__init__(detail)


class InvalidToken(BeamError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid or already used invite token"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, code="INVALID_TOKEN")


class Conflict(BeamError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource was modified concurrently"


class DuplicateRequest(BeamError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Duplicate request"


class UpstreamFailure(BeamError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Upstream service failure"


async def beam_error_handler(request: Request, exc: BeamError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
