from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
logger = logging.getLogger("opbridge.request")

REQUEST_ID_HEADER = "X-Request-ID"
# Client-supplied ids longer than this are replaced.
MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(request: Request, header_name: str) -> str:
    supplied = (request.headers.get(header_name) or "").strip()
    if supplied and len(supplied) <= MAX_REQUEST_ID_LENGTH and supplied.isprintable():
        return supplied
    return uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate every dashboard call with its log lines and upstream calls."""

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER) -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_request_id(request, self.header_name)
        tokens = (request_id_ctx_var.set(request_id), principal_ctx_var.set(None))
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            response.headers[self.header_name] = request_id
            response.headers.setdefault("X-Response-Time", f"{elapsed_ms:.2f}ms")
            fields = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
            }
            # require_user runs in a worker thread, so its principal is only visible on request.state.
            principal = getattr(request.state, "principal", None)
            if principal:
                fields["principal"] = principal
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(level, "request.completed", extra={"extra_data": fields})
            return response
        finally:
            request_id_ctx_var.reset(tokens[0])
            principal_ctx_var.reset(tokens[1])
