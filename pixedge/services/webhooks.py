from __future__ import annotations

import hashlib
import hmac
import json
import logging

import requests

from ..metrics import WEBHOOK_DELIVERIES
from ..models.entities import WebhookRecord, now_ms
from .background import one_shot_task_id
from .metrics import _inc

logger = logging.getLogger("pixedge.webhooks")

WEBHOOK_EVENTS = frozenset({"upload", "delete"})
DEFAULT_WEBHOOK_EVENTS = ["upload"]
WEBHOOK_USER_AGENT = "PixEdge-Webhook/1.0"
WEBHOOK_SIGNATURE_HEADER = "X-PixEdge-Signature"
WEBHOOK_TIMEOUT_SECONDS = 10


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def normalize_events(events) -> list[str] | None:
    """Known events from a request list; the default when no list is given, None if none are known."""
    if not isinstance(events, list):
        return list(DEFAULT_WEBHOOK_EVENTS)
    valid = []
    for event in events:
        if isinstance(event, str) and event in WEBHOOK_EVENTS and event not in valid:
            valid.append(event)
    return valid or None


def deliver_webhook(webhook, event: str, data: dict, *, session: requests.Session | None = None) -> bool:
    """POST one event to one hook. Returns False when skipped or failed."""
    if isinstance(webhook, dict):
        webhook = WebhookRecord.from_hash(webhook)
    if webhook is None or not webhook.is_active or event not in webhook.events:
        return False

    body = json.dumps({"event": event, "timestamp": now_ms(), "data": data}).encode("utf-8")
    headers = {"Content-Type": "application/json", "User-Agent": WEBHOOK_USER_AGENT}
    if webhook.secret:
        headers[WEBHOOK_SIGNATURE_HEADER] = sign_payload(webhook.secret, body)

    client = session or requests
    try:
        resp = client.post(webhook.url, data=body, headers=headers, timeout=WEBHOOK_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        logger.warning("Webhook %s delivery failed: %s", webhook.id, exc)
        _inc(WEBHOOK_DELIVERIES, "error")
        return False
    if resp.status_code >= 400:
        logger.warning("Webhook %s responded with %s", webhook.id, resp.status_code)
        _inc(WEBHOOK_DELIVERIES, "rejected")
        return False
    _inc(WEBHOOK_DELIVERIES, "delivered")
    return True


def dispatch_user_webhooks(store, user_id: str, event: str, data: dict, *, enqueue) -> int:
    """Queue one detached delivery per matching hook of ``user_id``."""
    queued = 0
    for webhook in store.list_user_webhooks(user_id):
        if not webhook.is_active or event not in webhook.events:
            continue
        enqueue(
            one_shot_task_id(f"webhook:{webhook.id}:{event}:{data.get('id', '')}"),
            "pixedge.deliver_webhook",
            deliver_webhook,
            webhook.to_task_payload(),
            event,
            data,
        )
        queued += 1
    return queued
