from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from flask import Flask

from _fakes import FakeCounterStore, InMemoryStore, run_inline
from pixedge.config import RateLimitTiers
from pixedge.errors import register_error_handlers
from pixedge.middleware.rate_limit import init_rate_limiter
from pixedge.routes.api import create_api_blueprint
from pixedge.routes.auth import create_auth_blueprint
from pixedge.routes.health import create_health_blueprint
from pixedge.routes.keys import create_keys_blueprint
from pixedge.routes.media import create_media_blueprint
from pixedge.routes.telegram_bot import create_telegram_bot_blueprint
from pixedge.routes.upload import create_upload_blueprint
from pixedge.routes.webhooks import create_webhooks_blueprint
from pixedge.services.accounts import (
    api_key_display_prefix,
    generate_api_key,
    hash_api_key,
    hash_password,
    normalize_api_key_rate_limit,
    password_rules_error,
    verify_password,
)
from pixedge.services.identity import IdentityResolver
from pixedge.services.rate_limiter import RateLimiter
from pixedge.services.slugs import SlugAllocator
from pixedge.services.uploads import UploadOrchestrator
from pixedge.services.webhooks import normalize_events
from pixedge.utils.jwt import TokenCodec
from pixedge.utils.validation import _is_valid_email, _is_valid_webhook_url


@pytest.fixture
def api():
    """A PixEdge app wired to in-memory collaborators."""
    store = InMemoryStore(counters=FakeCounterStore())
    telegram = MagicMock()
    telegram.configured = True
    telegram.upload_media.return_value = "AgADfile"
    enqueue = MagicMock(return_value=True)
    codec = TokenCodec("integration-secret")
    tiers = RateLimitTiers()

    resolver = IdentityResolver(users=store, api_keys=store, codec=codec, spawn=run_inline)
    uploads = UploadOrchestrator(
        resolver=resolver,
        limiter=RateLimiter(store.counters),
        allocator=SlugAllocator(store),
        store=store,
        telegram=telegram,
        enqueue=enqueue,
        spawn=run_inline,
        tiers=tiers,
        max_bytes=1024 * 1024,
        public_base_url="https://px.example",
    )

    app = Flask(__name__)
    app.config.update(TESTING=True, RATELIMIT_ENABLED=False)
    init_rate_limiter(app)
    register_error_handlers(app)

    app.register_blueprint(create_health_blueprint({"store": store, "telegram": telegram}))
    app.register_blueprint(create_api_blueprint({"store": store, "tiers": tiers}))
    app.register_blueprint(create_upload_blueprint({"uploads": uploads}))
    app.register_blueprint(
        create_media_blueprint({"store": store, "telegram": telegram, "public_base_url": "https://px.example"})
    )
    app.register_blueprint(
        create_auth_blueprint(
            {
                "store": store,
                "codec": codec,
                "resolver": resolver,
                "cookie_name": "auth_token",
                "cookie_secure": False,
                "auth_rate_limit": "10 per minute",
                "is_valid_email": _is_valid_email,
                "password_rules_error": password_rules_error,
                "hash_password": hash_password,
                "verify_password": verify_password,
            }
        )
    )
    app.register_blueprint(
        create_keys_blueprint(
            {
                "store": store,
                "resolver": resolver,
                "generate_api_key": generate_api_key,
                "hash_api_key": hash_api_key,
                "api_key_display_prefix": api_key_display_prefix,
                "normalize_api_key_rate_limit": normalize_api_key_rate_limit,
            }
        )
    )
    app.register_blueprint(
        create_webhooks_blueprint(
            {
                "store": store,
                "resolver": resolver,
                "is_valid_webhook_url": _is_valid_webhook_url,
                "normalize_events": normalize_events,
            }
        )
    )

    app.register_blueprint(
        create_telegram_bot_blueprint(
            {"store": store, "telegram": telegram, "public_base_url": "https://px.example"}
        )
    )

    return SimpleNamespace(
        app=app,
        client=app.test_client(),
        store=store,
        telegram=telegram,
        enqueue=enqueue,
        codec=codec,
    )


@pytest.fixture
def session_headers(api):
    user = api.store.create_user("owner@example.com", hash_password("correct-horse"))
    token = api.codec.issue(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}
