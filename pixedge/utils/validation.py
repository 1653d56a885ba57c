from __future__ import annotations

import ipaddress
import os
import re
from urllib.parse import urlparse

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _normalize_ip(value: str | None) -> str | None:
    if not value:
        return None

    value = (value.split(",")[0] if "," in value else value).strip()

    if value.startswith("[") and "]" in value:
        value = value[1 : value.index("]")]
    elif re.fullmatch(r"\d+\.\d+\.\d+\.\d+:\d+", value):
        value = value.split(":")[0]

    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _is_valid_email(value) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.fullmatch(value.strip()))


def _is_valid_webhook_url(value) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _measure_upload_size(file_storage) -> int:
    """Size of an uploaded werkzeug FileStorage, leaving the stream rewound."""
    stream = file_storage.stream
    try:
        position = stream.tell()
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(position)
        return int(size)
    except (AttributeError, OSError, ValueError):
        return int(getattr(file_storage, "content_length", 0) or 0)


def _format_bytes(value: int) -> str:
    size = float(value)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{int(size)}{unit}" if size == int(size) else f"{size:.2f}{unit}"
        size /= 1024
    return f"{value}B"


def _media_method(mime_type: str | None) -> str:
    mime = (mime_type or "").lower()
    if mime == "image/gif":
        return "animation"
    if mime.startswith("video/"):
        return "video"
    if mime.startswith("image/"):
        return "photo"
    return "document"
