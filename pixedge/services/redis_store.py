"""
Redis-backed record store.

Key layout::

    user:{id}               hash   UserRecord
    user:email:{email}      string user id
    user:{id}:keys          set    API key ids
    user:{id}:webhooks      set    webhook ids
    apikey:{id}             hash   ApiKeyRecord
    apikey:hash:{sha256}    string API key id
    webhook:{id}            hash   WebhookRecord
    snap:{slug}             hash   MediaRecord
    ratelimit:{key}         int    fixed-window counter (see RedisCounterStore)
    stats:*                 int    upload statistics
"""

from __future__ import annotations

import logging
import os
import time

import redis

from ..errors import Conflict, StoreUnavailable
from ..models.entities import (
    ApiKeyRecord,
    MediaRecord,
    UserRecord,
    WebhookRecord,
    new_record_id,
    now_ms,
)

logger = logging.getLogger("pixedge.store.redis")

REDIS_URL = (os.environ.get("PIXEDGE_REDIS_URL") or "").strip()
REDIS_CONNECT_TIMEOUT_SECONDS = float(os.environ.get("PIXEDGE_REDIS_CONNECT_TIMEOUT_SECONDS", "2"))
REDIS_ENABLED = bool(REDIS_URL)

STATS_KEYS = {
    "total_uploads": "stats:total_uploads",
    "web_uploads": "stats:web_uploads",
    "bot_uploads": "stats:bot_uploads",
    "images": "stats:images",
    "videos": "stats:videos",
}


def build_redis_client(url: str = REDIS_URL) -> redis.Redis:
    return redis.Redis.from_url(
        url,
        socket_connect_timeout=REDIS_CONNECT_TIMEOUT_SECONDS,
        socket_timeout=REDIS_CONNECT_TIMEOUT_SECONDS,
        decode_responses=True,
    )


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class RedisCounterStore:
    """Atomic INCR + EXPIRE counters for the fixed-window rate limiter."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def increment(self, key: str) -> int:
        try:
            return int(self._client.incr(key))
        except redis.RedisError as exc:
            raise StoreUnavailable(f"Counter increment failed: {exc}") from exc

    def set_expiry(self, key: str, seconds: int) -> None:
        try:
            self._client.expire(key, int(seconds))
        except redis.RedisError as exc:
            raise StoreUnavailable(f"Counter expiry failed: {exc}") from exc

    def has_expiry(self, key: str) -> bool:
        # TTL is -1 for a key that exists with no expiry.
        try:
            return int(self._client.ttl(key)) != -1
        except redis.RedisError as exc:
            raise StoreUnavailable(f"Counter TTL lookup failed: {exc}") from exc


class RedisStore:
    backend = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self.counters = RedisCounterStore(client)

    def ping(self) -> bool:
        return bool(self._client.ping())

    # -- users ---------------------------------------------------------------

    def find_user_by_id(self, user_id: str) -> UserRecord | None:
        return UserRecord.from_hash(self._client.hgetall(f"user:{user_id}"))

    def find_user_by_email(self, email: str) -> UserRecord | None:
        user_id = self._client.get(f"user:email:{_normalize_email(email)}")
        if not user_id:
            return None
        return self.find_user_by_id(user_id)

    def create_user(self, email: str, password_hash: str) -> UserRecord:
        record = UserRecord(
            id=new_record_id("user"),
            email=_normalize_email(email),
            password_hash=password_hash,
            created_at=now_ms(),
        )
        # SETNX on the email index is the uniqueness guard.
        if not self._client.set(f"user:email:{record.email}", record.id, nx=True):
            raise Conflict("User with this email already exists", code="USER_EXISTS")
        self._client.hset(f"user:{record.id}", mapping=record.to_hash())
        return record

    def update_user_last_login(self, user_id: str) -> None:
        self._client.hset(f"user:{user_id}", "last_login", str(now_ms()))

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
        pipe = self._client.pipeline()
        pipe.hset(f"apikey:{record.id}", mapping=record.to_hash())
        pipe.set(f"apikey:hash:{key_hash}", record.id)
        pipe.sadd(f"user:{user_id}:keys", record.id)
        pipe.execute()
        return record

    def find_api_key_by_id(self, api_key_id: str) -> ApiKeyRecord | None:
        return ApiKeyRecord.from_hash(self._client.hgetall(f"apikey:{api_key_id}"))

    def find_api_key_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        api_key_id = self._client.get(f"apikey:hash:{key_hash}")
        if not api_key_id:
            return None
        return self.find_api_key_by_id(api_key_id)

    def list_user_api_keys(self, user_id: str) -> list[ApiKeyRecord]:
        keys = []
        for api_key_id in sorted(self._client.smembers(f"user:{user_id}:keys") or ()):
            record = self.find_api_key_by_id(api_key_id)
            if record is not None:
                keys.append(record)
        return keys

    def touch_api_key_last_used(self, api_key_id: str) -> None:
        self._client.hset(f"apikey:{api_key_id}", "last_used", str(now_ms()))

    def revoke_api_key(self, api_key_id: str) -> None:
        self._client.hset(f"apikey:{api_key_id}", "is_active", "false")

    def delete_api_key(self, api_key_id: str) -> None:
        record = self.find_api_key_by_id(api_key_id)
        if record is None:
            return
        pipe = self._client.pipeline()
        pipe.delete(f"apikey:{api_key_id}")
        pipe.delete(f"apikey:hash:{record.key_hash}")
        pipe.srem(f"user:{record.user_id}:keys", api_key_id)
        pipe.execute()

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
        pipe = self._client.pipeline()
        pipe.hset(f"webhook:{record.id}", mapping=record.to_hash())
        pipe.sadd(f"user:{user_id}:webhooks", record.id)
        pipe.execute()
        return record

    def list_user_webhooks(self, user_id: str) -> list[WebhookRecord]:
        hooks = []
        for webhook_id in sorted(self._client.smembers(f"user:{user_id}:webhooks") or ()):
            record = WebhookRecord.from_hash(self._client.hgetall(f"webhook:{webhook_id}"))
            if record is not None:
                hooks.append(record)
        return hooks

    # -- media ---------------------------------------------------------------

    def media_exists(self, slug: str) -> bool:
        return bool(self._client.hexists(f"snap:{slug}", "telegram_file_id"))

    def save_media(self, record: MediaRecord, *, source: str = "web", create_only: bool = False) -> bool:
        """Persist a media record and bump the upload statistics.

        With ``create_only`` the write is guarded by HSETNX on the file id, and
        False is returned when another upload already owns the slug.
        """
        key = f"snap:{record.id}"
        if create_only and not self._client.hsetnx(key, "telegram_file_id", record.telegram_file_id):
            return False

        pipe = self._client.pipeline()
        pipe.hset(key, mapping=record.to_hash())
        pipe.incr(STATS_KEYS["total_uploads"])
        pipe.incr(STATS_KEYS["web_uploads"] if source == "web" else STATS_KEYS["bot_uploads"])
        pipe.incr(STATS_KEYS["videos"] if record.counts_as_video else STATS_KEYS["images"])
        pipe.execute()
        return True

    def get_media(self, slug: str, *, count_view: bool = True) -> MediaRecord | None:
        key = f"snap:{slug}"
        record = MediaRecord.from_hash(self._client.hgetall(key), media_id=slug)
        if record is None:
            return None
        if count_view:
            record.views = int(self._client.hincrby(key, "views", 1))
        return record

    def get_stats(self) -> dict:
        start = time.monotonic()
        names = list(STATS_KEYS)
        values = self._client.mget([STATS_KEYS[name] for name in names])
        stats = {name: int(value or 0) for name, value in zip(names, values)}
        stats["ping_ms"] = int((time.monotonic() - start) * 1000)
        return stats
