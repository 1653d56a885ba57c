"""
Typed records shared by the Redis and SQLite stores.

Redis keeps every record as a flat hash of strings; ``to_hash`` / ``from_hash``
handle the conversion so callers never see loose dicts. ``schema_version`` is
written with each hash so the layout can evolve without guessing.
"""

from __future__ import annotations

import json
import secrets
import string
import time
from dataclasses import dataclass, field

SCHEMA_VERSION = 1

_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_ms() -> int:
    return int(time.time() * 1000)


def new_record_id(prefix: str) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"{prefix}_{now_ms()}_{suffix}"


def _int_or_none(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true"}


def _compact(values: dict) -> dict[str, str]:
    result = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, bool):
            result[key] = "true" if value else "false"
        else:
            result[key] = str(value)
    return result


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    created_at: int
    last_login: int | None = None
    schema_version: int = SCHEMA_VERSION

    def to_hash(self) -> dict[str, str]:
        return _compact(
            {
                "id": self.id,
                "email": self.email,
                "password_hash": self.password_hash,
                "created_at": self.created_at,
                "last_login": self.last_login,
                "schema_version": self.schema_version,
            }
        )

    @classmethod
    def from_hash(cls, data: dict) -> UserRecord | None:
        if not data or not data.get("id"):
            return None
        return cls(
            id=str(data["id"]),
            email=str(data.get("email") or ""),
            password_hash=str(data.get("password_hash") or ""),
            created_at=_int_or_none(data.get("created_at")) or 0,
            last_login=_int_or_none(data.get("last_login")),
            schema_version=_int_or_none(data.get("schema_version")) or SCHEMA_VERSION,
        )

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "created_at": self.created_at,
            "last_login": self.last_login,
        }


@dataclass
class ApiKeyRecord:
    id: str
    user_id: str
    key_hash: str
    name: str
    prefix: str
    rate_limit: int
    created_at: int
    is_active: bool = True
    last_used: int | None = None
    schema_version: int = SCHEMA_VERSION

    def to_hash(self) -> dict[str, str]:
        return _compact(
            {
                "id": self.id,
                "user_id": self.user_id,
                "key_hash": self.key_hash,
                "name": self.name,
                "prefix": self.prefix,
                "rate_limit": self.rate_limit,
                "created_at": self.created_at,
                "is_active": self.is_active,
                "last_used": self.last_used,
                "schema_version": self.schema_version,
            }
        )

    @classmethod
    def from_hash(cls, data: dict) -> ApiKeyRecord | None:
        if not data or not data.get("id"):
            return None
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("user_id") or ""),
            key_hash=str(data.get("key_hash") or ""),
            name=str(data.get("name") or ""),
            prefix=str(data.get("prefix") or ""),
            rate_limit=_int_or_none(data.get("rate_limit")) or 100,
            created_at=_int_or_none(data.get("created_at")) or 0,
            is_active=_as_bool(data.get("is_active", "true")),
            last_used=_int_or_none(data.get("last_used")),
            schema_version=_int_or_none(data.get("schema_version")) or SCHEMA_VERSION,
        )

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "prefix": self.prefix,
            "rate_limit": self.rate_limit,
            "created_at": self.created_at,
            "last_used": self.last_used,
            "is_active": self.is_active,
        }


@dataclass
class WebhookRecord:
    id: str
    user_id: str
    url: str
    events: list[str] = field(default_factory=lambda: ["upload"])
    secret: str | None = None
    is_active: bool = True
    created_at: int = 0
    schema_version: int = SCHEMA_VERSION

    def to_hash(self) -> dict[str, str]:
        return _compact(
            {
                "id": self.id,
                "user_id": self.user_id,
                "url": self.url,
                "events": json.dumps(list(self.events)),
                "secret": self.secret,
                "is_active": self.is_active,
                "created_at": self.created_at,
                "schema_version": self.schema_version,
            }
        )

    @classmethod
    def from_hash(cls, data: dict) -> WebhookRecord | None:
        if not data or not data.get("id"):
            return None
        events = data.get("events")
        if isinstance(events, str):
            try:
                events = json.loads(events)
            except ValueError:
                events = []
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("user_id") or ""),
            url=str(data.get("url") or ""),
            events=[str(e) for e in (events or []) if e],
            secret=data.get("secret") or None,
            is_active=_as_bool(data.get("is_active", "true")),
            created_at=_int_or_none(data.get("created_at")) or 0,
            schema_version=_int_or_none(data.get("schema_version")) or SCHEMA_VERSION,
        )

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "events": list(self.events),
            "is_active": self.is_active,
            "created_at": self.created_at,
        }

    def to_task_payload(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "url": self.url,
            "events": list(self.events),
            "secret": self.secret,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }


@dataclass
class MediaRecord:
    id: str
    telegram_file_id: str
    created_at: int
    size: int
    mime_type: str
    version: str = "v2"
    views: int = 0
    user_id: str | None = None
    schema_version: int = SCHEMA_VERSION

    @property
    def metadata(self) -> dict:
        return {"size": self.size, "type": self.mime_type, "version": self.version}

    @property
    def counts_as_video(self) -> bool:
        return self.mime_type.startswith("video/") or self.mime_type == "image/gif"

    def to_hash(self) -> dict[str, str]:
        return _compact(
            {
                "id": self.id,
                "telegram_file_id": self.telegram_file_id,
                "created_at": self.created_at,
                "views": self.views,
                "metadata": json.dumps(self.metadata, separators=(",", ":")),
                "user_id": self.user_id,
                "schema_version": self.schema_version,
            }
        )

    @classmethod
    def from_hash(cls, data: dict, *, media_id: str | None = None) -> MediaRecord | None:
        if not data or not data.get("telegram_file_id"):
            return None
        metadata = data.get("metadata") or {}
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except ValueError:
                metadata = {}
        return cls(
            id=str(media_id or data.get("id") or ""),
            telegram_file_id=str(data["telegram_file_id"]),
            created_at=_int_or_none(data.get("created_at")) or 0,
            size=_int_or_none(metadata.get("size")) or 0,
            mime_type=str(metadata.get("type") or ""),
            version=str(metadata.get("version") or "v1"),
            views=_int_or_none(data.get("views")) or 0,
            user_id=data.get("user_id") or None,
            schema_version=_int_or_none(data.get("schema_version")) or SCHEMA_VERSION,
        )
