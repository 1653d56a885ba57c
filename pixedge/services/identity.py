"""
Request identity resolution.

Every inbound request maps to exactly one principal, strongest evidence
first: a user session token (Authorization header, then cookie), then an
API key header, then the anonymous client IP. Resolution never raises;
broken tokens and store hiccups fall through to the next step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

from ..errors import Unauthorized
from ..utils.jwt import TOKEN_TYPE_USER, TokenCodec
from ..utils.request import _get_bearer_token, _get_forwarded_ip
from .accounts import hash_api_key

logger = logging.getLogger("pixedge.identity")

DEFAULT_COOKIE_NAME = "auth_token"
DEFAULT_API_KEY_HEADER = "X-API-Key"


@dataclass(frozen=True)
class Anonymous:
    ip: str

    kind = "anonymous"

    @property
    def user_id(self) -> None:
        return None


@dataclass(frozen=True)
class UserSession:
    user_id: str
    email: str

    kind = "user"


@dataclass(frozen=True)
class ApiKeyPrincipal:
    user_id: str
    api_key_id: str
    key_prefix: str
    rate_limit: int

    kind = "apikey"


Principal = Union[Anonymous, UserSession, ApiKeyPrincipal]


def describe_principal(principal: Principal) -> str:
    if isinstance(principal, ApiKeyPrincipal):
        return f"API Key: {principal.key_prefix}..."
    if isinstance(principal, UserSession):
        return f"User: {principal.user_id}"
    return "Anonymous"


class IdentityResolver:
    def __init__(
        self,
        *,
        users,
        api_keys,
        codec: TokenCodec,
        spawn: Callable[..., bool] | None = None,
        cookie_name: str = DEFAULT_COOKIE_NAME,
        api_key_header: str = DEFAULT_API_KEY_HEADER,
    ) -> None:
        self._users = users
        self._api_keys = api_keys
        self._codec = codec
        self._spawn = spawn
        self.cookie_name = cookie_name
        self.api_key_header = api_key_header

    def resolve(self, req) -> Principal:
        session = self._resolve_session(req)
        if session is not None:
            return session

        api_key = self._resolve_api_key(req)
        if api_key is not None:
            return api_key

        return Anonymous(ip=_get_forwarded_ip(req))

    def require_auth(self, req) -> UserSession | ApiKeyPrincipal:
        principal = self.resolve(req)
        if isinstance(principal, Anonymous):
            raise Unauthorized()
        return principal

    def _session_token(self, req) -> str | None:
        token = _get_bearer_token(req)
        if token:
            return token
        cookies = getattr(req, "cookies", None) or {}
        return (cookies.get(self.cookie_name) or "").strip() or None

    def _resolve_session(self, req) -> UserSession | None:
        token = self._session_token(req)
        if not token:
            return None
        payload = self._codec.verify(token)
        if not payload or payload.get("type") != TOKEN_TYPE_USER:
            return None
        user_id = payload.get("userId")
        if not user_id:
            return None
        try:
            user = self._users.find_user_by_id(str(user_id))
        except Exception as exc:
            logger.warning("User lookup failed during identity resolution: %s", exc)
            return None
        if user is None:
            return None
        return UserSession(user_id=user.id, email=user.email)

    def _resolve_api_key(self, req) -> ApiKeyPrincipal | None:
        raw_key = (req.headers.get(self.api_key_header) or "").strip()
        if not raw_key:
            return None
        try:
            record = self._api_keys.find_api_key_by_hash(hash_api_key(raw_key))
        except Exception as exc:
            logger.warning("API key lookup failed during identity resolution: %s", exc)
            return None
        if record is None or not record.is_active:
            return None

        self._touch_last_used(record.id)
        return ApiKeyPrincipal(
            user_id=record.user_id,
            api_key_id=record.id,
            key_prefix=record.prefix,
            rate_limit=record.rate_limit,
        )

    def _touch_last_used(self, api_key_id: str) -> None:
        if self._spawn is None:
            return
        try:
            self._spawn(
                f"apikey-touch:{api_key_id}", self._api_keys.touch_api_key_last_used, api_key_id
            )
        except Exception as exc:
            logger.warning("Could not schedule last-used update for %s: %s", api_key_id, exc)
