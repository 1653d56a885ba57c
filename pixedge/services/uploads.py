"""
Upload orchestration.

``UploadOrchestrator.handle_upload`` runs the strictly ordered pipeline for a
single request: resolve the caller, charge the caller's rate-limit tier,
check the file, allocate the slug, store the bytes in Telegram, persist the
record, then hand the operational log message and webhook fan-out to detached
tasks. Nothing after the rate-limit check runs for a rejected caller, and no
upload happens for an invalid or taken custom ID.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field

from ..config import RateLimitTiers
from ..errors import FileTooLarge, MissingFile, PixEdgeError, RateLimitExceeded, SlugTaken
from ..metrics import RATE_LIMIT_REJECTIONS, UPLOAD_COUNT
from ..models.entities import MediaRecord, now_ms
from ..utils.validation import _format_bytes, _measure_upload_size
from .background import one_shot_task_id
from .identity import Anonymous, IdentityResolver, describe_principal
from .metrics import _inc
from .rate_limiter import RateLimiter, select_upload_tier
from .slugs import SlugAllocator, suggest_alternatives
from .webhooks import dispatch_user_webhooks

logger = logging.getLogger("pixedge.uploads")

INTERNAL_ERROR_MESSAGE = "Upload failed. Please try again later."


@dataclass
class UploadResult:
    status_code: int
    body: dict
    headers: dict[str, str] = field(default_factory=dict)
    principal: object | None = None

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def _direct_extension(mime_type: str) -> str:
    return ".mp4" if mime_type.startswith("video/") else ".jpg"


class UploadOrchestrator:
    def __init__(
        self,
        *,
        resolver: IdentityResolver,
        limiter: RateLimiter,
        allocator: SlugAllocator,
        store,
        telegram,
        enqueue,
        spawn,
        tiers: RateLimitTiers | None = None,
        max_bytes: int,
        conditional_write: bool = False,
        public_base_url: str = "",
    ) -> None:
        self.resolver = resolver
        self.limiter = limiter
        self.allocator = allocator
        self.store = store
        self.telegram = telegram
        self._enqueue = enqueue
        self._spawn = spawn
        self.tiers = tiers or RateLimitTiers()
        self.max_bytes = max_bytes
        self.conditional_write = conditional_write
        self.public_base_url = (public_base_url or "").rstrip("/")

    def handle_upload(self, req, *, version: str = "v2") -> UploadResult:
        principal = self.resolver.resolve(req)
        tier = select_upload_tier(principal, self.tiers)
        limit = self.limiter.check(tier.key, tier.limit, tier.window_seconds)
        headers = limit.headers()

        if not limit.admitted:
            logger.info("Upload rejected by %s tier (%s/%s)", tier.name, limit.count, limit.limit)
            _inc(RATE_LIMIT_REJECTIONS, tier.name)
            return self._failure(RateLimitExceeded(limit), headers, principal)

        try:
            body = self._store_upload(req, principal, version)
        except PixEdgeError as exc:
            return self._failure(exc, headers, principal)
        except Exception as exc:
            logger.exception("Upload failed")
            self._detached_log(one_shot_task_id("upload-error"), f"<b>Upload error ({version})</b>\n\n{type(exc).__name__}")
            _inc(UPLOAD_COUNT, principal.kind, "error")
            payload = {"success": False, "error": {"code": "INTERNAL_ERROR", "message": INTERNAL_ERROR_MESSAGE}}
            return UploadResult(500, payload, headers, principal)

        _inc(UPLOAD_COUNT, principal.kind, "success")
        return UploadResult(200, {"success": True, "data": body}, headers, principal)

    def _store_upload(self, req, principal, version: str) -> dict:
        upload = req.files.get("file")
        if upload is None:
            raise MissingFile()
        size = _measure_upload_size(upload)
        if size > self.max_bytes:
            raise FileTooLarge(f"File too large. Max size is {_format_bytes(self.max_bytes)}.")

        custom_id = req.form.get("customId") or req.form.get("custom_id")
        slug = self.allocator.allocate(custom_id)

        mime_type = (upload.mimetype or "application/octet-stream").lower()
        file_id = self.telegram.upload_media(
            upload.stream,
            upload.filename or "upload",
            mime_type,
            caption=f"<b>Uploaded via API {html.escape(version)}</b>",
        )

        record = MediaRecord(
            id=slug,
            telegram_file_id=file_id,
            created_at=now_ms(),
            size=size,
            mime_type=mime_type,
            version=version,
            user_id=principal.user_id,
        )
        if not self.store.save_media(record, source="web", create_only=self.conditional_write):
            logger.info("Lost the race for slug %s", slug)
            raise SlugTaken(slug, suggest_alternatives(slug))

        base_url = self.public_base_url or req.host_url.rstrip("/")
        url = f"{base_url}/i/{slug}"
        self._after_upload(principal, record, url, version)
        return {
            "id": slug,
            "url": url,
            "direct_url": f"{url}{_direct_extension(mime_type)}",
            "timestamp": record.created_at,
            "authenticated": not isinstance(principal, Anonymous),
        }

    def _after_upload(self, principal, record: MediaRecord, url: str, version: str) -> None:
        self._detached_log(
            one_shot_task_id(f"upload-log:{record.id}"),
            f"<b>New API {html.escape(version)} upload</b>\n\n"
            f"{html.escape(describe_principal(principal))}\n"
            f"Type: {html.escape(record.mime_type)}\n"
            f"Size: {record.size / 1024 / 1024:.2f} MB\n"
            f"Link: {html.escape(url)}",
        )
        if not principal.user_id:
            return
        data = {
            "id": record.id,
            "url": url,
            "size": record.size,
            "type": record.mime_type,
            "created_at": record.created_at,
        }
        try:
            self._spawn(
                one_shot_task_id(f"upload-webhooks:{record.id}"),
                dispatch_user_webhooks,
                self.store,
                principal.user_id,
                "upload",
                data,
                enqueue=self._enqueue,
            )
        except Exception as exc:
            logger.warning("Could not schedule webhooks for %s: %s", record.id, exc)

    def _detached_log(self, task_id: str, text: str) -> None:
        try:
            self._enqueue(task_id, "pixedge.send_log", self.telegram.send_log, text)
        except Exception as exc:
            logger.warning("Could not schedule log message %s: %s", task_id, exc)

    def _failure(self, exc: PixEdgeError, headers: dict[str, str], principal) -> UploadResult:
        _inc(UPLOAD_COUNT, principal.kind, exc.code.lower())
        return UploadResult(exc.status_code, exc.to_payload(), dict(headers), principal)
