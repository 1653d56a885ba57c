from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any


def parse_bool(value) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def parse_int(value, default: int, *, minimum: int | None = None) -> int:
    try:
        parsed = int(str(value).strip()) if value is not None and str(value).strip() else default
    except (TypeError, ValueError):
        parsed = default
    if minimum is not None:
        parsed = max(minimum, parsed)
    return parsed


@dataclass(frozen=True)
class RateLimitTiers:
    anonymous_limit: int = 20
    user_limit: int = 50
    apikey_default_limit: int = 100
    window_seconds: int = 60


def load_rate_limit_tiers() -> RateLimitTiers:
    return RateLimitTiers(
        anonymous_limit=parse_int(os.environ.get("PIXEDGE_RATE_LIMIT_ANON"), 20, minimum=1),
        user_limit=parse_int(os.environ.get("PIXEDGE_RATE_LIMIT_USER"), 50, minimum=1),
        apikey_default_limit=parse_int(
            os.environ.get("PIXEDGE_RATE_LIMIT_APIKEY_DEFAULT"), 100, minimum=1
        ),
        window_seconds=parse_int(os.environ.get("PIXEDGE_RATE_LIMIT_WINDOW_SECONDS"), 60, minimum=1),
    )


# 10MB, 20MB and 2GB ceilings have all shipped; default to the most permissive.
UPLOAD_MAX_BYTES = parse_int(os.environ.get("PIXEDGE_UPLOAD_MAX_BYTES"), 2 * 1024 * 1024 * 1024, minimum=1)
SLUG_CONDITIONAL_WRITE = parse_bool(os.environ.get("PIXEDGE_SLUG_CONDITIONAL_WRITE", "false"))
PUBLIC_BASE_URL = (os.environ.get("PIXEDGE_PUBLIC_BASE_URL") or "").strip().rstrip("/")
TELEGRAM_WEBHOOK_SECRET = (os.environ.get("PIXEDGE_TELEGRAM_WEBHOOK_SECRET") or "").strip()

AUTH_RATE_LIMIT = os.environ.get("PIXEDGE_AUTH_RATE_LIMIT", "10 per minute")


def load_flask_config() -> dict[str, Any]:
    return {
        "RATELIMIT_STORAGE_URI": os.environ.get("PIXEDGE_RATE_LIMIT_STORAGE_URI", "memory://"),
        "RATELIMIT_ENABLED": parse_bool(os.environ.get("PIXEDGE_RATE_LIMIT_ENABLED", "true")),
        "RATELIMIT_HEADERS_ENABLED": False,
    }
