from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from ..middlewares import principal_ctx_var, request_id_ctx_var

# Keys whose values are OpenProject or session credentials.
REDACTED_KEYS = frozenset({"api_token", "apitoken", "authorization", "token", "password"})
# Libraries that log every outbound OpenProject call at INFO.
QUIET_LOGGERS = ("httpx", "httpcore")


def _redact(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: "***" if key.lower() in REDACTED_KEYS else value for key, value in data.items()}


class JsonLogFormatter(logging.Formatter):
    """One JSON document per line, tagged with the request id and principal."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, ctx_var in (("request_id", request_id_ctx_var), ("principal", principal_ctx_var)):
            value = ctx_var.get()
            if value:
                payload[key] = value
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, Mapping):
            payload.update(_redact(extra))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.root.level))
