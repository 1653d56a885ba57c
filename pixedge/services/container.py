from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass

from flask import current_app

from ..config import (
    PUBLIC_BASE_URL,
    SLUG_CONDITIONAL_WRITE,
    UPLOAD_MAX_BYTES,
    RateLimitTiers,
    load_rate_limit_tiers,
    parse_int,
)
from ..utils.jwt import TokenCodec
from .background import enqueue_task, spawn_background
from .identity import DEFAULT_API_KEY_HEADER, DEFAULT_COOKIE_NAME, IdentityResolver
from .local_store import LocalStore
from .rate_limiter import RateLimiter
from .redis_store import REDIS_ENABLED, REDIS_URL, RedisStore, build_redis_client
from .slugs import SlugAllocator
from .telegram import TelegramClient
from .uploads import UploadOrchestrator

logger = logging.getLogger("pixedge.services")

AUTH_ISSUER = os.environ.get("PIXEDGE_AUTH_ISSUER", "pixedge")
AUTH_TOKEN_TTL_SECONDS = parse_int(os.environ.get("PIXEDGE_AUTH_TOKEN_TTL_SECONDS"), 7 * 86400, minimum=60)
AUTH_COOKIE_NAME = (os.environ.get("PIXEDGE_AUTH_COOKIE_NAME") or DEFAULT_COOKIE_NAME).strip()
API_KEY_HEADER = (os.environ.get("PIXEDGE_API_KEY_HEADER") or DEFAULT_API_KEY_HEADER).strip()


@dataclass
class ServiceContainer:
    store: object
    codec: TokenCodec
    telegram: TelegramClient
    limiter: RateLimiter
    allocator: SlugAllocator
    resolver: IdentityResolver
    uploads: UploadOrchestrator
    tiers: RateLimitTiers


def _auth_secret() -> str:
    secret = (os.environ.get("PIXEDGE_AUTH_SECRET") or "").strip()
    if secret:
        return secret
    logger.warning("PIXEDGE_AUTH_SECRET not set; generated ephemeral secret (sessions reset on restart).")
    return secrets.token_urlsafe(48)


def build_store():
    """Redis when configured and reachable, otherwise the local SQLite store."""
    if REDIS_ENABLED:
        try:
            client = build_redis_client(REDIS_URL)
            client.ping()
            return RedisStore(client)
        except Exception as exc:
            logger.warning("Redis unavailable, using local store: %s", exc)
    return LocalStore()


def build_services(
    *,
    store=None,
    telegram: TelegramClient | None = None,
    codec: TokenCodec | None = None,
    tiers: RateLimitTiers | None = None,
    spawn=spawn_background,
    enqueue=enqueue_task,
) -> ServiceContainer:
    store = store if store is not None else build_store()
    telegram = telegram or TelegramClient()
    codec = codec or TokenCodec(_auth_secret(), ttl_seconds=AUTH_TOKEN_TTL_SECONDS, issuer=AUTH_ISSUER)
    tiers = tiers or load_rate_limit_tiers()

    limiter = RateLimiter(store.counters)
    allocator = SlugAllocator(store)
    resolver = IdentityResolver(
        users=store,
        api_keys=store,
        codec=codec,
        spawn=spawn,
        cookie_name=AUTH_COOKIE_NAME,
        api_key_header=API_KEY_HEADER,
    )
    uploads = UploadOrchestrator(
        resolver=resolver,
        limiter=limiter,
        allocator=allocator,
        store=store,
        telegram=telegram,
        enqueue=enqueue,
        spawn=spawn,
        tiers=tiers,
        max_bytes=UPLOAD_MAX_BYTES,
        conditional_write=SLUG_CONDITIONAL_WRITE,
        public_base_url=PUBLIC_BASE_URL,
    )
    logger.info("Services ready (store=%s, rate limiting=%s)", store.backend, limiter.enabled)
    return ServiceContainer(
        store=store,
        codec=codec,
        telegram=telegram,
        limiter=limiter,
        allocator=allocator,
        resolver=resolver,
        uploads=uploads,
        tiers=tiers,
    )


def init_services(app, services: ServiceContainer | None = None) -> ServiceContainer:
    container = services or build_services()
    app.extensions["services"] = container
    return container


def get_services() -> ServiceContainer:
    container = current_app.extensions.get("services")
    if container is None:
        container = build_services()
        current_app.extensions["services"] = container
    return container
