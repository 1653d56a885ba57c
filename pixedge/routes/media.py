from __future__ import annotations

from flask import Blueprint, Response, jsonify, request, stream_with_context

from ..errors import NotFound, register_error_handlers

MEDIA_CACHE_CONTROL = "public, max-age=31536000, immutable"
STREAM_CHUNK_BYTES = 64 * 1024


def create_media_blueprint(deps: dict):
    store = deps["store"]
    telegram = deps["telegram"]
    public_base_url = (deps.get("public_base_url") or "").rstrip("/")

    bp = Blueprint("media", __name__)
    register_error_handlers(bp)

    def _base_url() -> str:
        return public_base_url or request.host_url.rstrip("/")

    @bp.route("/i/<path:raw_id>", methods=["GET"])
    def serve_media(raw_id: str):
        media_id = raw_id.split(".", 1)[0].strip().lower()
        record = store.get_media(media_id, count_view=True) if media_id else None
        if record is None:
            raise NotFound("Media not found")

        upstream = telegram.open_file(record.telegram_file_id)
        content_type = upstream.headers.get("Content-Type")
        if not content_type or content_type == "application/octet-stream":
            content_type = record.mime_type or "application/octet-stream"
        resp = Response(
            stream_with_context(upstream.iter_content(chunk_size=STREAM_CHUNK_BYTES)),
            mimetype=content_type,
        )
        resp.call_on_close(upstream.close)
        resp.headers["Cache-Control"] = MEDIA_CACHE_CONTROL
        return resp

    def _info(media_id: str):
        record = store.get_media(media_id, count_view=False)
        if record is None:
            raise NotFound("Image record not found")
        url = f"{_base_url()}/i/{record.id}"
        ext = ".mp4" if record.mime_type.startswith("video/") else ".jpg"
        return jsonify(
            {
                "success": True,
                "data": {
                    "id": record.id,
                    "url": url,
                    "direct_url": f"{url}{ext}",
                    "views": record.views,
                    "created_at": record.created_at,
                    "metadata": record.metadata,
                },
            }
        )

    @bp.route("/api/v1/info/<media_id>", methods=["GET"])
    def info_v1(media_id: str):
        return _info(media_id)

    @bp.route("/api/v2/info/<media_id>", methods=["GET"])
    def info_v2(media_id: str):
        return _info(media_id)

    return bp
