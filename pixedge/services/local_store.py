from __future__ import annotations

import json
import logging
from contextlib import contextmanager

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict
from ..models import LocalBase, get_local_engine
from ..models.entities import (
    ApiKeyRecord,
    MediaRecord,
    UserRecord,
    WebhookRecord,
    new_record_id,
    now_ms,
)
from ..models.records import ApiKeyRow, MediaRow, UserRow, WebhookRow

logger = logging.getLogger("pixedge.store.local")

_users = UserRow.__table__
_api_keys = ApiKeyRow.__table__
_webhooks = WebhookRow.__table__
_media = MediaRow.__table__


def _user_from_row(row) -> UserRecord | None:
    if row is None:
        return None
    return UserRecord(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        created_at=int(row.created_at),
        last_login=row.last_login,
    )


def _api_key_from_row(row) -> ApiKeyRecord | None:
    if row is None:
        return None
    return ApiKeyRecord(
        id=row.id,
        user_id=row.user_id,
        key_hash=row.key_hash,
        name=row.name,
        prefix=row.prefix,
        rate_limit=int(row.rate_limit or 100),
        created_at=int(row.created_at),
        is_active=bool(row.is_active),
        last_used=row.last_used,
    )


def _webhook_from_row(row) -> WebhookRecord | None:
    if row is None:
        return None
    return WebhookRecord.from_hash(
        {
            "id": row.id,
            "user_id": row.user_id,
            "url": row.url,
            "events": row.events,
            "secret": row.secret,
            "is_active": bool(row.is_active),
            "created_at": row.created_at,
        }
    )


def _media_from_row(row) -> MediaRecord | None:
    if row is None:
        return None
    return MediaRecord(
        id=row.id,
        telegram_file_id=row.telegram_file_id,
        created_at=int(row.created_at),
        size=int(row.size or 0),
        mime_type=row.mime_type or "",
        version=row.version or "v1",
        views=int(row.views or 0),
        user_id=row.user_id,
    )


class LocalStore:
    """
    SQLite store for running without Redis.

    It has no counter store, so upload rate limiting admits every call in
    this mode.
    """

    backend = "local"
    counters = None

    def __init__(self, engine=None) -> None:
        self._engine = engine or get_local_engine()
        LocalBase.metadata.create_all(self._engine)

    @contextmanager
    def _conn(self):
        with self._engine.begin() as conn:
            yield conn

    def ping(self) -> bool:
        with self._conn() as conn:
            conn.execute(select(1))
        return True

    # -- users ---------------------------------------------------------------

    def find_user_by_id(self, user_id: str) -> UserRecord | None:
        with self._conn() as conn:
            row = conn.execute(select(_users).where(_users.c.id == user_id)).first()
        return _user_from_row(row)

    def find_user_by_email(self, email: str) -> UserRecord | None:
        with self._conn() as conn:
            row = conn.execute(
                select(_users).where(_users.c.email == (email or "").strip().lower())
            ).first()
        return _user_from_row(row)

    def create_user(self, email: str, password_hash: str) -> UserRecord:
        record = UserRecord(
            id=new_record_id("user"),
            email=(email or "").strip().lower(),
            password_hash=password_hash,
            created_at=now_ms(),
        )
        try:
            with self._conn() as conn:
                conn.execute(
                    _users.insert().values(
                        id=record.id,
                        email=record.email,
                        password_hash=record.password_hash,
                        created_at=record.created_at,
                    )
                )
        except IntegrityError:
            raise Conflict("User with this email already exists", code="USER_EXISTS") from None
        return record

    def update_user_last_login(self, user_id: str) -> None:
        with self._conn() as conn:
            conn.execute(update(_users).where(_users.c.id == user_id).values(last_login=now_ms()))

    # -- API keys ------------------------------------------------------------

    def create_api_key(
        self, user_id: str, *, name: str, key_hash: str, prefix: str, rate_limit: int
    ) -> ApiKeyRecord:
        record = ApiKeyRecord(
            id=new_record_id("key"),
            user_id=user_id,
            key_hash=key_hash,
            name=name,
            prefix=prefix,
            rate_limit=rate_limit,
            created_at=now_ms(),
        )
        with self._conn() as conn:
            conn.execute(
                _api_keys.insert().values(
                    id=record.id,
                    user_id=record.user_id,
                    key_hash=record.key_hash,
                    name=record.name,
                    prefix=record.prefix,
                    rate_limit=record.rate_limit,
                    created_at=record.created_at,
                    is_active=True,
                )
            )
        return record

    def find_api_key_by_id(self, api_key_id: str) -> ApiKeyRecord | None:
        with self._conn() as conn:
            row = conn.execute(select(_api_keys).where(_api_keys.c.id == api_key_id)).first()
        return _api_key_from_row(row)

    def find_api_key_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        with self._conn() as conn:
            row = conn.execute(select(_api_keys).where(_api_keys.c.key_hash == key_hash)).first()
        return _api_key_from_row(row)

    def list_user_api_keys(self, user_id: str) -> list[ApiKeyRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                select(_api_keys)
                .where(_api_keys.c.user_id == user_id)
                .order_by(_api_keys.c.created_at)
            ).all()
        return [_api_key_from_row(row) for row in rows]

    def touch_api_key_last_used(self, api_key_id: str) -> None:
        with self._conn() as conn:
            conn.execute(
                update(_api_keys).where(_api_keys.c.id == api_key_id).values(last_used=now_ms())
            )

    def revoke_api_key(self, api_key_id: str) -> None:
        with self._conn() as conn:
            conn.execute(
                update(_api_keys).where(_api_keys.c.id == api_key_id).values(is_active=False)
            )

    def delete_api_key(self, api_key_id: str) -> None:
        with self._conn() as conn:
            conn.execute(delete(_api_keys).where(_api_keys.c.id == api_key_id))

    # -- webhooks ------------------------------------------------------------

    def create_webhook(
        self, user_id: str, *, url: str, events: list[str], secret: str | None = None
    ) -> WebhookRecord:
        record = WebhookRecord(
            id=new_record_id("wh"),
            user_id=user_id,
            url=url,
            events=list(events),
            secret=secret,
            created_at=now_ms(),
        )
        with self._conn() as conn:
            conn.execute(
                _webhooks.insert().values(
                    id=record.id,
                    user_id=record.user_id,
                    url=record.url,
                    events=json.dumps(record.events),
                    secret=record.secret,
                    is_active=True,
                    created_at=record.created_at,
                )
            )
        return record

    def list_user_webhooks(self, user_id: str) -> list[WebhookRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                select(_webhooks)
                .where(_webhooks.c.user_id == user_id)
                .order_by(_webhooks.c.created_at)
            ).all()
        return [hook for hook in (_webhook_from_row(row) for row in rows) if hook is not None]

    # -- media ---------------------------------------------------------------

    def media_exists(self, slug: str) -> bool:
        with self._conn() as conn:
            row = conn.execute(select(_media.c.id).where(_media.c.id == slug)).first()
        return row is not None

    def save_media(self, record: MediaRecord, *, source: str = "web", create_only: bool = False) -> bool:
        values = {
            "id": record.id,
            "telegram_file_id": record.telegram_file_id,
            "created_at": record.created_at,
            "views": record.views,
            "size": record.size,
            "mime_type": record.mime_type,
            "version": record.version,
            "source": source,
            "user_id": record.user_id,
        }
        stmt = sqlite_insert(_media).values(**values)
        if create_only:
            try:
                with self._conn() as conn:
                    conn.execute(stmt)
            except IntegrityError:
                return False
            return True

        stmt = stmt.on_conflict_do_update(
            index_elements=[_media.c.id],
            set_={key: value for key, value in values.items() if key != "id"},
        )
        with self._conn() as conn:
            conn.execute(stmt)
        return True

    def get_media(self, slug: str, *, count_view: bool = True) -> MediaRecord | None:
        with self._conn() as conn:
            if count_view:
                conn.execute(update(_media).where(_media.c.id == slug).values(views=_media.c.views + 1))
            row = conn.execute(select(_media).where(_media.c.id == slug)).first()
        return _media_from_row(row)

    def get_stats(self) -> dict:
        is_video = (_media.c.mime_type.like("video/%")) | (_media.c.mime_type == "image/gif")
        with self._conn() as conn:
            total = conn.execute(select(func.count()).select_from(_media)).scalar() or 0
            web = conn.execute(
                select(func.count()).select_from(_media).where(_media.c.source == "web")
            ).scalar() or 0
            videos = conn.execute(select(func.count()).select_from(_media).where(is_video)).scalar() or 0
        return {
            "total_uploads": int(total),
            "web_uploads": int(web),
            "bot_uploads": int(total - web),
            "images": int(total - videos),
            "videos": int(videos),
            "ping_ms": 0,
        }
