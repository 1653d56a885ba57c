from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from ..errors import register_error_handlers


def create_upload_blueprint(deps: dict):
    uploads = deps["uploads"]

    bp = Blueprint("upload", __name__)
    register_error_handlers(bp)

    def _run(version: str):
        result = uploads.handle_upload(request, version=version)
        g.principal = result.principal
        resp = jsonify(result.body)
        resp.status_code = result.status_code
        for key, value in result.headers.items():
            resp.headers[key] = value
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.route("/api/v2/upload", methods=["POST"])
    def upload_v2():
        return _run("v2")

    @bp.route("/api/v1/upload", methods=["POST"])
    def upload_v1():
        return _run("v1")

    @bp.route("/api/upload", methods=["POST"])
    def upload_legacy():
        return _run("v1")

    return bp
