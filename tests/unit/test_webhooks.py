import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest
import requests

from _fakes import InMemoryStore
from pixedge.models.entities import WebhookRecord
from pixedge.services.webhooks import (
    WEBHOOK_SIGNATURE_HEADER,
    deliver_webhook,
    dispatch_user_webhooks,
    normalize_events,
    sign_payload,
)


def _hook(**overrides):
    values = {"id": "wh_1", "user_id": "user_1", "url": "https://hooks.example/in", "events": ["upload"]}
    values.update(overrides)
    return WebhookRecord(**values)


@pytest.fixture
def session():
    s = MagicMock()
    s.post.return_value = MagicMock(status_code=200)
    return s


def test_sign_payload_is_hmac_sha256():
    body = b'{"event":"upload"}'
    expected = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert sign_payload("s3cret", body) == expected


@pytest.mark.parametrize(
    "events, expected",
    [
        (None, ["upload"]),
        ("upload", ["upload"]),
        (["upload", "delete"], ["upload", "delete"]),
        (["delete", "bogus", "delete"], ["delete"]),
        (["bogus"], None),
        ([], None),
    ],
)
def test_normalize_events(events, expected):
    assert normalize_events(events) == expected


def test_delivery_body_and_headers(session):
    assert deliver_webhook(_hook(secret="s3cret"), "upload", {"id": "pic"}, session=session)

    url = session.post.call_args[0][0]
    kwargs = session.post.call_args[1]
    body = json.loads(kwargs["data"])
    assert url == "https://hooks.example/in"
    assert body["event"] == "upload"
    assert body["data"] == {"id": "pic"}
    assert isinstance(body["timestamp"], int)
    assert kwargs["headers"]["User-Agent"] == "PixEdge-Webhook/1.0"
    assert kwargs["headers"][WEBHOOK_SIGNATURE_HEADER] == sign_payload("s3cret", kwargs["data"])


def test_no_signature_without_secret(session):
    deliver_webhook(_hook(), "upload", {"id": "pic"}, session=session)
    assert WEBHOOK_SIGNATURE_HEADER not in session.post.call_args[1]["headers"]


def test_accepts_task_payload_dict(session):
    assert deliver_webhook(_hook().to_task_payload(), "upload", {"id": "pic"}, session=session)


@pytest.mark.parametrize(
    "hook, event",
    [(_hook(is_active=False), "upload"), (_hook(events=["delete"]), "upload")],
)
def test_skips_inactive_or_unsubscribed(session, hook, event):
    assert not deliver_webhook(hook, event, {}, session=session)
    session.post.assert_not_called()


def test_receiver_errors_are_failures(session):
    session.post.return_value = MagicMock(status_code=500)
    assert not deliver_webhook(_hook(), "upload", {}, session=session)


def test_network_errors_are_swallowed(session):
    session.post.side_effect = requests.ConnectionError("refused")
    assert not deliver_webhook(_hook(), "upload", {}, session=session)


def test_dispatch_queues_matching_hooks_only():
    store = InMemoryStore()
    upload_hook = store.create_webhook("user_1", url="https://a.example", events=["upload"])
    store.create_webhook("user_1", url="https://b.example", events=["delete"])
    inactive = store.create_webhook("user_1", url="https://c.example", events=["upload"])
    inactive.is_active = False
    store.create_webhook("user_2", url="https://d.example", events=["upload"])

    enqueue = MagicMock(return_value=True)
    queued = dispatch_user_webhooks(store, "user_1", "upload", {"id": "pic"}, enqueue=enqueue)

    assert queued == 1
    enqueue.assert_called_once()
    assert enqueue.call_args.args[0].startswith(f"webhook:{upload_hook.id}:upload:pic:")
    assert enqueue.call_args.args[1:] == (
        "pixedge.deliver_webhook",
        deliver_webhook,
        upload_hook.to_task_payload(),
        "upload",
        {"id": "pic"},
    )
