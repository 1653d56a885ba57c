from __future__ import annotations

import json
import logging
import os
import re
from datetime import UTC, datetime

from flask import g, has_request_context, request

LOG_FORMAT = (os.environ.get("PIXEDGE_LOG_FORMAT", "json") or "json").strip().lower()
LOG_LEVEL = (os.environ.get("PIXEDGE_LOG_LEVEL", "INFO") or "INFO").strip().upper()
REQUEST_ID_HEADER = (
    os.environ.get("PIXEDGE_REQUEST_ID_HEADER", "X-Request-ID") or "X-Request-ID"
).strip()
REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{8,128}$")

_CONTEXT_FIELDS = ("request_id", "remote_addr", "method", "path", "principal")


class RequestContextFilter(logging.Filter):
    """Stamps each record with the request it was logged under, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            for name in _CONTEXT_FIELDS:
                setattr(record, name, None)
            return True

        forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
        record.request_id = getattr(g, "request_id", None)
        record.remote_addr = forwarded or request.remote_addr
        record.method = request.method
        record.path = request.path
        principal = getattr(g, "principal", None)
        record.principal = getattr(principal, "kind", None)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def configure_logging(app) -> None:
    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    if LOG_FORMAT == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s")
    for handler in root.handlers:
        handler.setFormatter(formatter)
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters):
            handler.addFilter(RequestContextFilter())
    root.setLevel(LOG_LEVEL)
    app.logger.handlers = root.handlers
    app.logger.setLevel(LOG_LEVEL)
    app.logger.propagate = False
