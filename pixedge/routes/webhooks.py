from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..errors import ValidationFailed, register_error_handlers


def create_webhooks_blueprint(deps: dict):
    store = deps["store"]
    resolver = deps["resolver"]
    is_valid_webhook_url = deps["is_valid_webhook_url"]
    normalize_events = deps["normalize_events"]

    bp = Blueprint("webhooks", __name__)
    register_error_handlers(bp)

    @bp.route("/api/v2/webhooks", methods=["GET"])
    def list_webhooks():
        principal = resolver.require_auth(request)
        hooks = store.list_user_webhooks(principal.user_id)
        return jsonify({"success": True, "data": [hook.to_public() for hook in hooks]})

    @bp.route("/api/v2/webhooks", methods=["POST"])
    def create_webhook():
        principal = resolver.require_auth(request)
        data = request.get_json(silent=True) or {}
        url = data.get("url")
        if not url or not isinstance(url, str):
            raise ValidationFailed("Webhook URL is required", code="MISSING_FIELDS")
        if not is_valid_webhook_url(url):
            raise ValidationFailed("Invalid webhook URL format", code="INVALID_URL")
        events = normalize_events(data.get("events"))
        if not events:
            raise ValidationFailed(
                "At least one valid event is required (upload, delete)", code="INVALID_EVENTS"
            )
        secret = data.get("secret")
        if not isinstance(secret, str) or not secret.strip():
            secret = None

        hook = store.create_webhook(principal.user_id, url=url.strip(), events=events, secret=secret)
        return jsonify({"success": True, "data": hook.to_public()})

    return bp
