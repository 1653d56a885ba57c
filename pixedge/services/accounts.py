from __future__ import annotations

import hashlib
import logging
import os
import re
import secrets

import requests
from werkzeug.security import check_password_hash, generate_password_hash

from ..config import parse_bool, parse_int

logger = logging.getLogger("pixedge.accounts")

API_KEY_PREFIX = "px_"
API_KEY_DISPLAY_LENGTH = len(API_KEY_PREFIX) + 8
DEFAULT_API_KEY_RATE_LIMIT = 100

PASSWORD_MIN_LEN = parse_int(os.environ.get("PIXEDGE_PASSWORD_MIN_LEN"), 8, minimum=6)
PASSWORD_REQUIRE_UPPER = parse_bool(os.environ.get("PIXEDGE_PASSWORD_REQUIRE_UPPER", "false"))
PASSWORD_REQUIRE_DIGIT = parse_bool(os.environ.get("PIXEDGE_PASSWORD_REQUIRE_DIGIT", "false"))
PASSWORD_PWNED_CHECK = parse_bool(os.environ.get("PIXEDGE_PASSWORD_PWNED_CHECK", "false"))
try:
    PASSWORD_PWNED_TIMEOUT_SECONDS = float(os.environ.get("PIXEDGE_PASSWORD_PWNED_TIMEOUT_SECONDS", "5"))
except (TypeError, ValueError):
    PASSWORD_PWNED_TIMEOUT_SECONDS = 5.0

PASSWORD_UPPER_RE = re.compile(r"[A-Z]")
PASSWORD_DIGIT_RE = re.compile(r"\d")


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def hash_api_key(raw_key: str) -> str:
    # API keys are high-entropy random strings, so a plain SHA-256 is enough for lookup.
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def api_key_display_prefix(raw_key: str) -> str:
    return raw_key[:API_KEY_DISPLAY_LENGTH]


def normalize_api_key_rate_limit(value) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_API_KEY_RATE_LIMIT
    return limit if limit > 0 else DEFAULT_API_KEY_RATE_LIMIT


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        return False


def _password_is_pwned(password: str) -> bool:
    if not PASSWORD_PWNED_CHECK:
        return False
    sha1 = hashlib.sha1(password.encode("utf-8")).hexdigest().upper()
    prefix, suffix = sha1[:5], sha1[5:]
    try:
        resp = requests.get(
            f"https://api.pwnedpasswords.com/range/{prefix}",
            timeout=PASSWORD_PWNED_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning("Pwned password check failed: %s", exc)
        return False
    if resp.status_code != 200:
        logger.warning("Pwned password check failed: %s", resp.status_code)
        return False
    for line in resp.text.splitlines():
        hash_suffix, _, _count = line.partition(":")
        if hash_suffix.strip().upper() == suffix:
            return True
    return False


def password_rules_error(password) -> str | None:
    if not password or not isinstance(password, str):
        return "Password is required"
    if len(password) < PASSWORD_MIN_LEN:
        return f"Password must be at least {PASSWORD_MIN_LEN} characters"
    if PASSWORD_REQUIRE_UPPER and not PASSWORD_UPPER_RE.search(password):
        return "Password must include an uppercase letter"
    if PASSWORD_REQUIRE_DIGIT and not PASSWORD_DIGIT_RE.search(password):
        return "Password must include a number"
    if _password_is_pwned(password):
        return "Password appears in a breach. Choose another."
    return None
