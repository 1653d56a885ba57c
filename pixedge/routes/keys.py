from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..errors import Forbidden, NotFound, ValidationFailed, register_error_handlers


def create_keys_blueprint(deps: dict):
    store = deps["store"]
    resolver = deps["resolver"]
    generate_api_key = deps["generate_api_key"]
    hash_api_key = deps["hash_api_key"]
    api_key_display_prefix = deps["api_key_display_prefix"]
    normalize_api_key_rate_limit = deps["normalize_api_key_rate_limit"]

    bp = Blueprint("keys", __name__)
    register_error_handlers(bp)

    def _owned_key(api_key_id: str, user_id: str, action: str):
        record = store.find_api_key_by_id(api_key_id)
        if record is None:
            raise NotFound("API key not found")
        if record.user_id != user_id:
            raise Forbidden(f"You do not have permission to {action} this API key")
        return record

    @bp.route("/api/v2/keys", methods=["GET"])
    def list_keys():
        principal = resolver.require_auth(request)
        keys = store.list_user_api_keys(principal.user_id)
        return jsonify({"success": True, "data": [key.to_public() for key in keys]})

    @bp.route("/api/v2/keys", methods=["POST"])
    def create_key():
        principal = resolver.require_auth(request)
        data = request.get_json(silent=True) or {}
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationFailed("API key name is required", code="MISSING_FIELDS")

        raw_key = generate_api_key()
        record = store.create_api_key(
            principal.user_id,
            name=name.strip(),
            key_hash=hash_api_key(raw_key),
            prefix=api_key_display_prefix(raw_key),
            rate_limit=normalize_api_key_rate_limit(data.get("rate_limit")),
        )
        resp = jsonify(
            {
                "success": True,
                "data": {
                    "id": record.id,
                    "name": record.name,
                    "key": raw_key,
                    "prefix": record.prefix,
                    "rate_limit": record.rate_limit,
                    "created_at": record.created_at,
                },
            }
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.route("/api/v2/keys/<api_key_id>", methods=["DELETE"])
    def delete_key(api_key_id: str):
        principal = resolver.require_auth(request)
        _owned_key(api_key_id, principal.user_id, "delete")
        store.delete_api_key(api_key_id)
        return jsonify({"success": True, "message": "API key deleted successfully"})

    @bp.route("/api/v2/keys/<api_key_id>", methods=["PATCH"])
    def revoke_key(api_key_id: str):
        principal = resolver.require_auth(request)
        _owned_key(api_key_id, principal.user_id, "modify")
        store.revoke_api_key(api_key_id)
        return jsonify({"success": True, "message": "API key revoked successfully"})

    return bp
