from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..errors import Conflict, NotFound, Unauthorized, ValidationFailed, register_error_handlers
from ..middleware.rate_limit import limiter


def create_auth_blueprint(deps: dict):
    store = deps["store"]
    codec = deps["codec"]
    resolver = deps["resolver"]
    cookie_name = deps["cookie_name"]
    cookie_secure = deps["cookie_secure"]
    auth_rate_limit = deps["auth_rate_limit"]
    is_valid_email = deps["is_valid_email"]
    password_rules_error = deps["password_rules_error"]
    hash_password = deps["hash_password"]
    verify_password = deps["verify_password"]

    bp = Blueprint("auth", __name__)
    register_error_handlers(bp)

    def _credentials() -> tuple[str, str]:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not email or not password or not isinstance(email, str) or not isinstance(password, str):
            raise ValidationFailed("Email and password are required", code="MISSING_FIELDS")
        return email.strip().lower(), password

    def _session_response(user, token: str):
        resp = jsonify({"success": True, "data": {"user": user.to_public(), "token": token}})
        resp.set_cookie(
            cookie_name,
            token,
            max_age=codec.ttl_seconds,
            httponly=True,
            secure=cookie_secure,
            samesite="Lax",
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.route("/api/v2/auth/register", methods=["POST"])
    @limiter.limit(auth_rate_limit)
    def register():
        email, password = _credentials()
        if not is_valid_email(email):
            raise ValidationFailed("Invalid email format", code="INVALID_EMAIL")
        weak = password_rules_error(password)
        if weak:
            raise ValidationFailed(weak, code="WEAK_PASSWORD")
        if store.find_user_by_email(email) is not None:
            raise Conflict("User with this email already exists", code="USER_EXISTS")

        user = store.create_user(email, hash_password(password))
        token = codec.issue(user_id=user.id, email=user.email)
        return _session_response(user, token)

    @bp.route("/api/v2/auth/login", methods=["POST"])
    @limiter.limit(auth_rate_limit)
    def login():
        email, password = _credentials()
        user = store.find_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid email or password", code="INVALID_CREDENTIALS")

        store.update_user_last_login(user.id)
        token = codec.issue(user_id=user.id, email=user.email)
        return _session_response(user, token)

    @bp.route("/api/v2/auth/logout", methods=["POST"])
    def logout():
        resp = jsonify({"success": True, "message": "Logged out successfully"})
        resp.delete_cookie(cookie_name, httponly=True, secure=cookie_secure, samesite="Lax")
        return resp

    @bp.route("/api/v2/auth/me", methods=["GET"])
    def me():
        principal = resolver.require_auth(request)
        user = store.find_user_by_id(principal.user_id)
        if user is None:
            raise NotFound("User not found", code="USER_NOT_FOUND")
        resp = jsonify({"success": True, "data": user.to_public()})
        resp.headers["Cache-Control"] = "no-store"
        return resp

    return bp
