from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

# Upstream statuses that are meaningful to the dashboard and are relayed as-is.
RELAYED_UPSTREAM_STATUSES = frozenset({400, 401, 403, 404, 409, 422})


class OpenProjectError(Exception):
    """OpenProject answered with an error status."""

    def __init__(self, status_code: int, message: str, details: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details


class UpstreamUnavailable(OpenProjectError):
    """OpenProject could not be reached or failed on its side."""

    def __init__(self, message: str, details: Any | None = None, status_code: int = status.HTTP_502_BAD_GATEWAY) -> None:
        super().__init__(status_code, message, details)


class OpenProjectNotConfigured(Exception):
    """Raised when a client is built without a base URL or credential."""


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"ok": False, "code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": exc.errors()},
    )


async def openproject_exception_handler(request: Request, exc: OpenProjectError):
    if isinstance(exc, UpstreamUnavailable) or exc.status_code not in RELAYED_UPSTREAM_STATUSES:
        logger.error(
            "OpenProject unavailable on %s: %s",
            request.url.path,
            exc.message,
            extra={"extra_data": {"upstream_status": exc.status_code}},
        )
        return ErrorEnvelope(
            status_code=status.HTTP_502_BAD_GATEWAY,
            code="upstream_unavailable",
            message=exc.message,
            details=exc.details,
        )
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="upstream_error",
        message=exc.message,
        details=exc.details,
    )


async def configuration_exception_handler(request: Request, exc: OpenProjectNotConfigured):
    logger.error("OpenProject client misconfigured: %s", exc)
    return ErrorEnvelope(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="configuration_error",
        message=str(exc),
    )
