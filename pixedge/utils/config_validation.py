from __future__ import annotations

import logging
import os

logger = logging.getLogger("pixedge.config")

RECOMMENDED_VARS = [
    "PIXEDGE_AUTH_SECRET",
    "PIXEDGE_REDIS_URL",
    "PIXEDGE_TELEGRAM_BOT_TOKEN",
    "PIXEDGE_TELEGRAM_CHAT_ID",
]


def validate_config() -> list[str]:
    missing = [var for var in RECOMMENDED_VARS if not os.environ.get(var)]
    if missing:
        logger.warning("Missing recommended environment variables: %s", ", ".join(missing))

    auth_secret = os.environ.get("PIXEDGE_AUTH_SECRET")
    if auth_secret and len(auth_secret) < 32:
        logger.warning("PIXEDGE_AUTH_SECRET is too short. Use at least 32 characters.")
    return missing
