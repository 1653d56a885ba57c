#!/usr/bin/env python3
"""
PixEdge media host

Provides:
- Uploads (identity resolution, tiered rate limiting, vanity slugs):
  - POST /api/v2/upload, /api/v1/upload, /api/upload
- Media:
  - GET /i/<id>[.<ext>]: streams the stored file
  - GET /api/v1/info/<id>, /api/v2/info/<id>: record metadata
- Accounts (session token or API key):
  - POST /api/v2/auth/register|login|logout, GET /api/v2/auth/me
  - GET/POST /api/v2/keys, DELETE/PATCH /api/v2/keys/<id>
  - GET/POST /api/v2/webhooks
- Telegram bot:
  - POST /api/webhook/telegram: photos and image documents sent to the bot
- Operations:
  - GET /health, /version, /metrics, /api/stats
"""

from __future__ import annotations

import os
import secrets
import time

import sentry_sdk
from flask import Flask, g, has_request_context, request
from sentry_sdk.integrations.flask import FlaskIntegration

from .config import AUTH_RATE_LIMIT, PUBLIC_BASE_URL, TELEGRAM_WEBHOOK_SECRET, load_flask_config, parse_bool
from .errors import register_error_handlers
from .logging_config import REQUEST_ID_HEADER, REQUEST_ID_RE, configure_logging
from .metrics import (
    METRICS_ENABLED,
    REQUEST_COUNT,
    REQUEST_ERRORS,
    REQUEST_IN_FLIGHT,
    REQUEST_LATENCY,
)
from .middleware.rate_limit import init_rate_limiter
from .routes.api import create_api_blueprint
from .routes.auth import create_auth_blueprint
from .routes.health import create_health_blueprint
from .routes.keys import create_keys_blueprint
from .routes.media import create_media_blueprint
from .routes.metrics import metrics_bp
from .routes.telegram_bot import create_telegram_bot_blueprint
from .routes.upload import create_upload_blueprint
from .routes.webhooks import create_webhooks_blueprint
from .services.accounts import (
    api_key_display_prefix,
    generate_api_key,
    hash_api_key,
    hash_password,
    normalize_api_key_rate_limit,
    password_rules_error,
    verify_password,
)
from .services.background import celery_app
from .services.container import AUTH_COOKIE_NAME, init_services
from .services.secrets import _load_external_secrets
from .services.webhooks import deliver_webhook, normalize_events
from .tracing import configure_tracing
from .utils.config_validation import validate_config
from .utils.validation import _is_valid_email, _is_valid_webhook_url

_load_external_secrets()
validate_config()

app = Flask(__name__)
for key, value in load_flask_config().items():
    app.config.setdefault(key, value)

configure_logging(app)
configure_tracing(app)
services = init_services(app)
register_error_handlers(app)

AUTH_COOKIE_SECURE = parse_bool(os.environ.get("PIXEDGE_AUTH_COOKIE_SECURE", "true"))


def _generate_request_id(raw: str | None) -> str:
    candidate = (raw or "").strip()
    if candidate and REQUEST_ID_RE.fullmatch(candidate):
        return candidate
    return secrets.token_urlsafe(12)


SENTRY_DSN = (os.environ.get("PIXEDGE_SENTRY_DSN") or "").strip()
SENTRY_ENV = (
    os.environ.get("PIXEDGE_SENTRY_ENV") or os.environ.get("SENTRY_ENVIRONMENT") or "production"
).strip()
SENTRY_RELEASE = (os.environ.get("PIXEDGE_RELEASE") or "").strip() or None
try:
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get("PIXEDGE_SENTRY_TRACES_SAMPLE_RATE", "0"))
except (TypeError, ValueError):
    SENTRY_TRACES_SAMPLE_RATE = 0.0
try:
    SENTRY_PROFILES_SAMPLE_RATE = float(os.environ.get("PIXEDGE_SENTRY_PROFILES_SAMPLE_RATE", "0"))
except (TypeError, ValueError):
    SENTRY_PROFILES_SAMPLE_RATE = 0.0

if SENTRY_DSN:

    def _sentry_before_send(event, _hint):
        if has_request_context():
            request_id = getattr(g, "request_id", None)
            if request_id:
                event.setdefault("tags", {})["request_id"] = request_id
        return event

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENV,
        release=SENTRY_RELEASE,
        integrations=[FlaskIntegration()],
        traces_sample_rate=max(0.0, SENTRY_TRACES_SAMPLE_RATE),
        profiles_sample_rate=max(0.0, SENTRY_PROFILES_SAMPLE_RATE),
        send_default_pii=False,
        before_send=_sentry_before_send,
    )


if celery_app:

    @celery_app.task(name="pixedge.deliver_webhook")
    def _celery_deliver_webhook(webhook: dict, event: str, data: dict) -> bool:
        return deliver_webhook(webhook, event, data)

    @celery_app.task(name="pixedge.send_log")
    def _celery_send_log(text: str) -> bool:
        return services.telegram.send_log(text)


init_rate_limiter(app)


def _record_request_metrics(response) -> None:
    if not METRICS_ENABLED or REQUEST_COUNT is None:
        return
    if getattr(g, "_metrics_done", False):
        return
    g._metrics_done = True
    if getattr(g, "_metrics_inflight", False):
        if REQUEST_IN_FLIGHT is not None:
            REQUEST_IN_FLIGHT.dec()
        g._metrics_inflight = False

    endpoint = request.endpoint or "unknown"
    method = request.method
    status = str(response.status_code)
    REQUEST_COUNT.labels(method, endpoint, status).inc()
    if REQUEST_LATENCY is not None and hasattr(g, "_request_started_at"):
        REQUEST_LATENCY.labels(method, endpoint).observe(time.perf_counter() - g._request_started_at)
    if REQUEST_ERRORS is not None and response.status_code >= 400:
        REQUEST_ERRORS.labels(method, endpoint, status).inc()


@app.before_request
def _init_request_context():
    g.request_id = _generate_request_id(request.headers.get(REQUEST_ID_HEADER))
    g._request_started_at = time.perf_counter()
    if METRICS_ENABLED and REQUEST_IN_FLIGHT is not None:
        REQUEST_IN_FLIGHT.inc()
        g._metrics_inflight = True


@app.after_request
def _finalize_request(response):
    if hasattr(g, "request_id"):
        response.headers[REQUEST_ID_HEADER] = g.request_id
    _record_request_metrics(response)
    return response


@app.teardown_request
def _teardown_request(_exc):
    if METRICS_ENABLED and getattr(g, "_metrics_inflight", False) and REQUEST_IN_FLIGHT is not None:
        REQUEST_IN_FLIGHT.dec()
        g._metrics_inflight = False


app.register_blueprint(create_health_blueprint({"store": services.store, "telegram": services.telegram}))
app.register_blueprint(metrics_bp)
app.register_blueprint(create_api_blueprint({"store": services.store, "tiers": services.tiers}))
app.register_blueprint(create_upload_blueprint({"uploads": services.uploads}))
app.register_blueprint(
    create_media_blueprint(
        {
            "store": services.store,
            "telegram": services.telegram,
            "public_base_url": PUBLIC_BASE_URL,
        }
    )
)
app.register_blueprint(
    create_auth_blueprint(
        {
            "store": services.store,
            "codec": services.codec,
            "resolver": services.resolver,
            "cookie_name": AUTH_COOKIE_NAME,
            "cookie_secure": AUTH_COOKIE_SECURE,
            "auth_rate_limit": AUTH_RATE_LIMIT,
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
            "store": services.store,
            "resolver": services.resolver,
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
            "store": services.store,
            "resolver": services.resolver,
            "is_valid_webhook_url": _is_valid_webhook_url,
            "normalize_events": normalize_events,
        }
    )
)
app.register_blueprint(
    create_telegram_bot_blueprint(
        {
            "store": services.store,
            "telegram": services.telegram,
            "public_base_url": PUBLIC_BASE_URL,
            "webhook_secret": TELEGRAM_WEBHOOK_SECRET,
        }
    )
)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
