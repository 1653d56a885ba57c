from unittest.mock import MagicMock, patch

import pytest
import requests

from pixedge.services import accounts


def test_generated_keys_are_unique_and_prefixed():
    keys = {accounts.generate_api_key() for _ in range(50)}
    assert len(keys) == 50
    for key in keys:
        assert key.startswith("px_")
        assert len(key) == 3 + 64


def test_hash_api_key_is_stable_sha256():
    digest = accounts.hash_api_key("px_test")
    assert digest == accounts.hash_api_key("px_test")
    assert len(digest) == 64
    assert digest != accounts.hash_api_key("px_test2")


def test_display_prefix():
    assert accounts.api_key_display_prefix("px_0123456789abcdef") == "px_01234567"


@pytest.mark.parametrize(
    "value, expected",
    [(None, 100), ("", 100), ("abc", 100), (0, 100), (-5, 100), (5, 5), ("250", 250)],
)
def test_normalize_api_key_rate_limit(value, expected):
    assert accounts.normalize_api_key_rate_limit(value) == expected


def test_password_hash_roundtrip():
    hashed = accounts.hash_password("correct horse")
    assert hashed != "correct horse"
    assert accounts.verify_password("correct horse", hashed)
    assert not accounts.verify_password("wrong horse", hashed)


@pytest.mark.parametrize("password, stored", [("", "x"), ("pw", ""), ("pw", "not-a-hash")])
def test_verify_password_rejects_bad_input(password, stored):
    assert not accounts.verify_password(password, stored)


def test_password_rules():
    assert accounts.password_rules_error(None) == "Password is required"
    assert accounts.password_rules_error("short") == "Password must be at least 8 characters"
    assert accounts.password_rules_error("long-enough") is None


def test_password_rules_optional_requirements():
    with patch.object(accounts, "PASSWORD_REQUIRE_UPPER", True), patch.object(
        accounts, "PASSWORD_REQUIRE_DIGIT", True
    ):
        assert accounts.password_rules_error("lowercase1") == "Password must include an uppercase letter"
        assert accounts.password_rules_error("Uppercase") == "Password must include a number"
        assert accounts.password_rules_error("Uppercase1") is None


def test_pwned_check_matches_suffix():
    # sha1("password") = 5BAA61E4C9B93F3F0682250B6CF8331B7EE68FD8
    resp = MagicMock(status_code=200, text="1E4C9B93F3F0682250B6CF8331B7EE68FD8:3861493\nABC:1")
    with patch.object(accounts, "PASSWORD_PWNED_CHECK", True), patch.object(
        accounts.requests, "get", return_value=resp
    ) as mock_get:
        assert accounts.password_rules_error("password") == "Password appears in a breach. Choose another."
    assert mock_get.call_args[0][0].endswith("/range/5BAA6")


def test_pwned_check_fails_open():
    with patch.object(accounts, "PASSWORD_PWNED_CHECK", True), patch.object(
        accounts.requests, "get", side_effect=requests.ConnectionError("offline")
    ):
        assert accounts.password_rules_error("password") is None
