from __future__ import annotations

import logging
import os

import requests

from ..errors import StorageBackendError
from ..utils.validation import _media_method

logger = logging.getLogger("pixedge.telegram")

TELEGRAM_API_BASE = os.environ.get("PIXEDGE_TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/")
TELEGRAM_BOT_TOKEN = (os.environ.get("PIXEDGE_TELEGRAM_BOT_TOKEN") or "").strip()
TELEGRAM_CHAT_ID = (os.environ.get("PIXEDGE_TELEGRAM_CHAT_ID") or "").strip()
TELEGRAM_LOG_CHAT_ID = (os.environ.get("PIXEDGE_TELEGRAM_LOG_CHAT_ID") or "").strip()
TELEGRAM_UPLOAD_TIMEOUT_SECONDS = 120
TELEGRAM_TIMEOUT_SECONDS = 10

_METHODS = {
    "photo": "sendPhoto",
    "animation": "sendAnimation",
    "video": "sendVideo",
    "document": "sendDocument",
}


class TelegramClient:
    """
    Stores uploaded media in a Telegram chat and resolves it back to a
    downloadable URL. The bot token is never included in raised errors.
    """

    def __init__(
        self,
        *,
        token: str | None = None,
        chat_id: str | None = None,
        log_chat_id: str | None = None,
        api_base: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._token = TELEGRAM_BOT_TOKEN if token is None else token
        self.chat_id = TELEGRAM_CHAT_ID if chat_id is None else chat_id
        self.log_chat_id = (TELEGRAM_LOG_CHAT_ID if log_chat_id is None else log_chat_id) or self.chat_id
        self.api_base = (api_base or TELEGRAM_API_BASE).rstrip("/")
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self._token and self.chat_id)

    def _redact(self, text: str) -> str:
        if self._token:
            return str(text).replace(self._token, "<redacted>")
        return str(text)

    def _method_url(self, method: str) -> str:
        return f"{self.api_base}/bot{self._token}/{method}"

    def _call(self, method: str, *, timeout: int, **kwargs) -> dict:
        try:
            resp = self._session.post(self._method_url(method), timeout=timeout, **kwargs)
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise StorageBackendError(f"Telegram {method} failed: {self._redact(exc)}") from None
        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise StorageBackendError(
                f"Telegram API error: {self._redact(description or resp.status_code)}"
            )
        return data.get("result") or {}

    def upload_media(self, stream, filename: str, mime_type: str, caption: str | None = None) -> str:
        """Send a file to the storage chat and return its Telegram file id."""
        if not self.configured:
            raise StorageBackendError("Telegram credentials not configured")

        kind = _media_method(mime_type)
        data = {"chat_id": self.chat_id}
        if caption:
            data["caption"] = caption
            data["parse_mode"] = "HTML"
        files = {kind: (filename or "upload", stream, mime_type or "application/octet-stream")}
        result = self._call(_METHODS[kind], timeout=TELEGRAM_UPLOAD_TIMEOUT_SECONDS, data=data, files=files)
        return self._extract_file_id(kind, result)

    @staticmethod
    def _extract_file_id(kind: str, result: dict) -> str:
        if kind == "photo":
            # Telegram returns every resized variant; the last is the largest.
            sizes = result.get("photo") or []
            info = sizes[-1] if sizes else None
        else:
            info = result.get(kind) or result.get("document")
        file_id = (info or {}).get("file_id")
        if not file_id:
            raise StorageBackendError("Telegram response did not include a file id")
        return str(file_id)

    def get_file_url(self, file_id: str) -> str:
        if not self._token:
            raise StorageBackendError("Telegram token not configured")
        try:
            resp = self._session.get(
                self._method_url("getFile"),
                params={"file_id": file_id},
                timeout=TELEGRAM_TIMEOUT_SECONDS,
            )
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise StorageBackendError(f"Telegram getFile failed: {self._redact(exc)}") from None
        if not data.get("ok"):
            raise StorageBackendError(f"Telegram API error: {self._redact(data.get('description'))}")
        file_path = (data.get("result") or {}).get("file_path")
        if not file_path:
            raise StorageBackendError("Telegram file has no download path")
        return f"{self.api_base}/file/bot{self._token}/{file_path}"

    def open_file(self, file_id: str) -> requests.Response:
        url = self.get_file_url(file_id)
        try:
            resp = self._session.get(url, stream=True, timeout=TELEGRAM_UPLOAD_TIMEOUT_SECONDS)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise StorageBackendError(f"Telegram download failed: {self._redact(exc)}") from None
        return resp

    def send_message(self, chat_id, text: str, parse_mode: str = "HTML") -> dict:
        if not self._token:
            raise StorageBackendError("Telegram token not configured")
        return self._call(
            "sendMessage",
            timeout=TELEGRAM_TIMEOUT_SECONDS,
            json={
                "chat_id": chat_id,
                "text": text,
                "parse_mode": parse_mode,
                "disable_web_page_preview": True,
            },
        )

    def send_log(self, text: str) -> bool:
        """Post to the operational log chat. Returns False when unconfigured."""
        if not (self._token and self.log_chat_id):
            return False
        self.send_message(self.log_chat_id, text)
        return True
