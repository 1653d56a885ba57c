from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time

TOKEN_TYPE_USER = "user"
TOKEN_TYPE_APIKEY = "apikey"


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padded = data + ("=" * (-len(data) % 4))
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _json_segment(value: dict) -> str:
    return _b64url_encode(json.dumps(value, separators=(",", ":")).encode("utf-8"))


class TokenCodec:
    """HS256 session tokens carrying ``userId``, ``email`` and ``type``."""

    def __init__(self, secret: str, *, ttl_seconds: int = 7 * 86400, issuer: str = "pixedge"):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode("utf-8")
        self.ttl_seconds = max(60, int(ttl_seconds))
        self.issuer = issuer

    def _sign(self, signing_input: bytes) -> bytes:
        return hmac.new(self._secret, signing_input, hashlib.sha256).digest()

    def encode(self, payload: dict) -> str:
        header_b64 = _json_segment({"alg": "HS256", "typ": "JWT"})
        payload_b64 = _json_segment(payload)
        signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
        return f"{header_b64}.{payload_b64}.{_b64url_encode(self._sign(signing_input))}"

    def issue(self, *, user_id: str, email: str, token_type: str = TOKEN_TYPE_USER) -> str:
        now = int(time.time())
        return self.encode(
            {
                "iss": self.issuer,
                "iat": now,
                "exp": now + self.ttl_seconds,
                "userId": user_id,
                "email": email,
                "type": token_type,
            }
        )

    def verify(self, token: str | None) -> dict | None:
        """Returns the payload of a well-signed, unexpired token, otherwise None."""
        if not token:
            return None
        parts = token.split(".")
        if len(parts) != 3:
            return None
        try:
            signing_input = f"{parts[0]}.{parts[1]}".encode("ascii")
            signature = _b64url_decode(parts[2])
        except (UnicodeEncodeError, ValueError):
            return None
        if not hmac.compare_digest(signature, self._sign(signing_input)):
            return None
        try:
            payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        exp = payload.get("exp")
        if exp is None:
            return None
        try:
            if int(exp) < int(time.time()):
                return None
        except (TypeError, ValueError):
            return None
        if payload.get("iss") not in (None, self.issuer):
            return None
        return payload
