from __future__ import annotations

from flask import request

from .validation import _normalize_ip

ANONYMOUS_IP = "anonymous"


def _get_forwarded_ip(req) -> str:
    """Client IP from X-Forwarded-For, or the "anonymous" sentinel.

    Only values that parse as an IP address are used, so an anonymous
    rate-limit key can never spell out another principal's key.
    """
    headers = getattr(req, "headers", None)
    raw = headers.get("X-Forwarded-For") if headers is not None else None
    return _normalize_ip(raw) or ANONYMOUS_IP


def _get_bearer_token(req) -> str | None:
    auth_header = req.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    return auth_header[7:].strip() or None


def _get_rate_limit_key() -> str:
    try:
        ip = _normalize_ip(request.headers.get("X-Forwarded-For")) or _normalize_ip(request.remote_addr)
    except RuntimeError:
        ip = None
    return ip or "unknown"
