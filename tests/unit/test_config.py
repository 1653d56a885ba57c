import logging
import os
from unittest.mock import patch

import pytest
from flask import Flask, g

from pixedge.config import load_flask_config, load_rate_limit_tiers, parse_bool, parse_int
from pixedge.logging_config import JsonFormatter, RequestContextFilter
from pixedge.services.identity import UserSession
from pixedge.utils.config_validation import validate_config


@pytest.mark.parametrize(
    "value, expected",
    [(None, False), ("", False), ("0", False), ("no", False), ("1", True), ("TRUE", True), (" on ", True), (True, True)],
)
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


@pytest.mark.parametrize(
    "value, default, minimum, expected",
    [(None, 5, None, 5), ("", 5, None, 5), ("abc", 5, None, 5), ("12", 5, None, 12), ("0", 5, 1, 1)],
)
def test_parse_int(value, default, minimum, expected):
    assert parse_int(value, default, minimum=minimum) == expected


def test_rate_limit_tiers_from_env():
    env = {
        "PIXEDGE_RATE_LIMIT_ANON": "3",
        "PIXEDGE_RATE_LIMIT_USER": "bogus",
        "PIXEDGE_RATE_LIMIT_WINDOW_SECONDS": "0",
    }
    with patch.dict(os.environ, env):
        tiers = load_rate_limit_tiers()
    assert tiers.anonymous_limit == 3
    assert tiers.user_limit == 50
    assert tiers.apikey_default_limit == 100
    assert tiers.window_seconds == 1


def test_flask_config_defaults():
    with patch.dict(os.environ, {}, clear=True):
        config = load_flask_config()
    assert config["RATELIMIT_STORAGE_URI"] == "memory://"
    assert config["RATELIMIT_ENABLED"] is True


def test_validate_config_reports_missing(caplog):
    with patch.dict(os.environ, {"PIXEDGE_AUTH_SECRET": "short"}, clear=True):
        with caplog.at_level(logging.WARNING, logger="pixedge.config"):
            missing = validate_config()
    assert "PIXEDGE_REDIS_URL" in missing
    assert "PIXEDGE_AUTH_SECRET" not in missing
    assert "too short" in caplog.text


def test_request_context_filter_outside_request():
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "hello", None, None)
    assert RequestContextFilter().filter(record)
    assert record.request_id is None
    assert record.principal is None


def test_request_context_filter_inside_request():
    app = Flask(__name__)
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "hello", None, None)
    with app.test_request_context("/api/v2/upload", method="POST", headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.1"}):
        g.request_id = "req_12345678"
        g.principal = UserSession("user_1", "a@b.co")
        RequestContextFilter().filter(record)
    assert record.request_id == "req_12345678"
    assert record.remote_addr == "1.2.3.4"
    assert record.method == "POST"
    assert record.path == "/api/v2/upload"
    assert record.principal == "user"

    formatted = JsonFormatter().format(record)
    assert '"request_id":"req_12345678"' in formatted
    assert '"principal":"user"' in formatted
