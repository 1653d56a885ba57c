"""
Telegram bot webhook.

Telegram posts every update the bot receives to ``/api/webhook/telegram``.
Photos and image documents become media records that point at the file id
Telegram already holds, so no bytes pass through PixEdge. The endpoint
always answers ``200 OK``; Telegram would otherwise redeliver the update.
"""

from __future__ import annotations

import hmac
import html
import logging

from flask import Blueprint, Response, request

from ..errors import register_error_handlers
from ..metrics import UPLOAD_COUNT
from ..models.entities import MediaRecord, now_ms
from ..services.metrics import _inc
from ..services.slugs import generate_id

logger = logging.getLogger("pixedge.telegram_bot")

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"

WELCOME_TEXT = (
    "<b>Welcome to PixEdge Bot!</b>\n\n"
    "I can host your images at the edge. Just send me any photo or document (as image).\n\n"
    "<b>Commands:</b>\n"
    "/upload - Instructions\n"
    "/tgm - Instructions"
)
HOW_TO_TEXT = (
    "<b>How to Upload:</b>\n\n"
    "1. Directly send a photo to this bot.\n"
    '2. Or send an image as a "File/Document".\n\n'
    "I will instantly return a high-speed PixEdge link!"
)
IMAGES_ONLY_TEXT = "Please send only image files."
FAILED_TEXT = "Failed to process your image. Please try again later."


def _ok() -> Response:
    return Response("OK", mimetype="text/plain")


def create_telegram_bot_blueprint(deps: dict):
    store = deps["store"]
    telegram = deps["telegram"]
    public_base_url = (deps.get("public_base_url") or "").rstrip("/")
    webhook_secret = deps.get("webhook_secret") or ""

    bp = Blueprint("telegram_bot", __name__)
    register_error_handlers(bp)

    def _base_url() -> str:
        return public_base_url or request.host_url.rstrip("/")

    def _save_file(chat_id, file_id: str, file_size, mime_type: str) -> None:
        try:
            record = MediaRecord(
                id=generate_id(),
                telegram_file_id=str(file_id),
                created_at=now_ms(),
                size=int(file_size or 0),
                mime_type=mime_type,
                version="bot",
            )
            store.save_media(record, source="bot")
        except Exception:
            logger.exception("Bot upload failed for chat %s", chat_id)
            _inc(UPLOAD_COUNT, "bot", "error")
            telegram.send_message(chat_id, FAILED_TEXT)
            return

        _inc(UPLOAD_COUNT, "bot", "success")
        url = f"{_base_url()}/i/{record.id}"
        logger.info("Bot upload %s from chat %s", record.id, chat_id)
        telegram.send_message(
            chat_id,
            "<b>File Uploaded Successfully!</b>\n\n"
            f"<b>Link:</b> {html.escape(url)}\n"
            "<i>Hosted on PixEdge</i>",
        )

    def _handle_message(message: dict) -> None:
        chat_id = (message.get("chat") or {}).get("id")
        if chat_id is None:
            return

        text = message.get("text")
        if text == "/start":
            telegram.send_message(chat_id, WELCOME_TEXT)
            return
        if text in ("/upload", "/tgm"):
            telegram.send_message(chat_id, HOW_TO_TEXT)
            return

        photo = message.get("photo")
        if isinstance(photo, list) and photo:
            # Telegram lists every resized variant; the last is the largest.
            largest = photo[-1]
            _save_file(chat_id, largest["file_id"], largest.get("file_size"), "image/jpeg")
            return

        document = message.get("document")
        if isinstance(document, dict):
            mime_type = document.get("mime_type") or ""
            if mime_type.startswith("image/"):
                _save_file(chat_id, document["file_id"], document.get("file_size"), mime_type)
            else:
                telegram.send_message(chat_id, IMAGES_ONLY_TEXT)

    @bp.route("/api/webhook/telegram", methods=["POST"])
    def telegram_webhook():
        if webhook_secret:
            supplied = request.headers.get(SECRET_TOKEN_HEADER, "")
            if not hmac.compare_digest(supplied.encode("utf-8"), webhook_secret.encode("utf-8")):
                logger.warning("Rejected Telegram update with a bad secret token")
                return Response("Forbidden", status=403, mimetype="text/plain")

        update = request.get_json(silent=True)
        message = update.get("message") if isinstance(update, dict) else None
        if not isinstance(message, dict):
            return _ok()

        try:
            _handle_message(message)
        except Exception:
            logger.exception("Telegram update %s could not be handled", update.get("update_id"))
        return _ok()

    return bp
