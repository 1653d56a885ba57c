from __future__ import annotations

from flask import Blueprint, jsonify


def create_api_blueprint(deps: dict):
    store = deps["store"]
    tiers = deps["tiers"]

    bp = Blueprint("api", __name__)

    @bp.route("/api", methods=["GET"])
    def api_index():
        return jsonify(
            {
                "success": True,
                "message": "Welcome to the PixEdge API",
                "endpoints": {"v1": "/api/v1", "v2": "/api/v2"},
            }
        )

    @bp.route("/api/v1", methods=["GET"])
    def api_v1():
        return jsonify(
            {
                "success": True,
                "version": "v1.0.0",
                "status": "stable",
                "endpoints": {"upload": "/api/v1/upload", "info": "/api/v1/info/<id>"},
            }
        )

    @bp.route("/api/v2", methods=["GET"])
    def api_v2():
        return jsonify(
            {
                "success": True,
                "version": "v2.0.0",
                "features": {
                    "authentication": "Session token and API key support",
                    "rate_limiting": "Higher limits for authenticated callers",
                    "webhooks": "Event notifications",
                    "api_keys": "Programmatic access with custom rate limits",
                },
                "rate_limits": {
                    "anonymous": tiers.anonymous_limit,
                    "user": tiers.user_limit,
                    "api_key_default": tiers.apikey_default_limit,
                    "window_seconds": tiers.window_seconds,
                },
                "endpoints": {
                    "auth": {
                        "register": "/api/v2/auth/register",
                        "login": "/api/v2/auth/login",
                        "logout": "/api/v2/auth/logout",
                        "me": "/api/v2/auth/me",
                    },
                    "keys": {
                        "list": "/api/v2/keys",
                        "create": "/api/v2/keys",
                        "delete": "/api/v2/keys/<id>",
                        "revoke": "/api/v2/keys/<id> (PATCH)",
                    },
                    "webhooks": {"list": "/api/v2/webhooks", "create": "/api/v2/webhooks"},
                    "upload": "/api/v2/upload",
                    "info": "/api/v2/info/<id>",
                },
            }
        )

    @bp.route("/api/stats", methods=["GET"])
    def stats():
        resp = jsonify({"success": True, "data": store.get_stats()})
        resp.headers["Cache-Control"] = "no-store"
        return resp

    return bp
