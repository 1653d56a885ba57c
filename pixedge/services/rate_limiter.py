from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from ..config import RateLimitTiers
from .identity import Anonymous, ApiKeyPrincipal, Principal, UserSession

logger = logging.getLogger("pixedge.ratelimit")

RATE_LIMIT_KEY_PREFIX = "ratelimit:"


class CounterStore(Protocol):
    def increment(self, key: str) -> int: ...

    def set_expiry(self, key: str, seconds: int) -> None: ...

    def has_expiry(self, key: str) -> bool: ...


@dataclass(frozen=True)
class RateLimitResult:
    admitted: bool
    limit: int
    remaining: int
    count: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }


@dataclass(frozen=True)
class RateLimitTier:
    name: str
    key: str
    limit: int
    window_seconds: int


class RateLimiter:
    """Fixed-window counter: the window starts at a key's first hit in it.

    With no counter store configured, or when the store errors, every call is
    admitted; rate limiting is a guard, not a correctness requirement.
    """

    def __init__(self, counters: CounterStore | None, *, key_prefix: str = RATE_LIMIT_KEY_PREFIX):
        self._counters = counters
        self._key_prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self._counters is not None

    def check(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        if self._counters is None:
            return RateLimitResult(admitted=True, limit=limit, remaining=limit, count=0)

        full_key = f"{self._key_prefix}{key}"
        try:
            count = int(self._counters.increment(full_key))
        except Exception as exc:
            logger.warning("Rate limit store unavailable for %s, admitting: %s", key, exc)
            return RateLimitResult(admitted=True, limit=limit, remaining=limit, count=0)

        # A counter left without a TTL would never reset.
        if count == 1:
            self._set_expiry(full_key, window_seconds)
        elif count > limit and not self._has_expiry(full_key):
            logger.warning("Rate limit counter %s had no expiry, re-arming", key)
            self._set_expiry(full_key, window_seconds)

        return RateLimitResult(
            admitted=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            count=count,
        )

    def _set_expiry(self, full_key: str, window_seconds: int) -> None:
        try:
            self._counters.set_expiry(full_key, window_seconds)
        except Exception as exc:
            logger.warning("Rate limit expiry failed for %s: %s", full_key, exc)

    def _has_expiry(self, full_key: str) -> bool:
        try:
            return bool(self._counters.has_expiry(full_key))
        except Exception as exc:
            # Unknown TTL: leave it alone rather than slide the window.
            logger.warning("Rate limit TTL lookup failed for %s: %s", full_key, exc)
            return True


def select_upload_tier(principal: Principal, tiers: RateLimitTiers | None = None) -> RateLimitTier:
    tiers = tiers or RateLimitTiers()
    window = tiers.window_seconds
    if isinstance(principal, ApiKeyPrincipal):
        limit = principal.rate_limit
        if not limit or limit <= 0:
            limit = tiers.apikey_default_limit
        return RateLimitTier(
            name="apikey",
            key=f"upload:apikey:{principal.api_key_id}",
            limit=limit,
            window_seconds=window,
        )
    if isinstance(principal, UserSession):
        return RateLimitTier(
            name="user",
            key=f"upload:user:{principal.user_id}",
            limit=tiers.user_limit,
            window_seconds=window,
        )
    if isinstance(principal, Anonymous):
        return RateLimitTier(
            name="anonymous",
            key=f"upload:{principal.ip}",
            limit=tiers.anonymous_limit,
            window_seconds=window,
        )
    raise TypeError(f"Unknown principal: {principal!r}")
