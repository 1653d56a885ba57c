from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from flask import Flask

from _fakes import FakeClock, FakeCounterStore
from pixedge.config import RateLimitTiers
from pixedge.middleware.rate_limit import init_rate_limiter, limiter
from pixedge.services.identity import Anonymous, ApiKeyPrincipal, UserSession
from pixedge.services.rate_limiter import RateLimiter, select_upload_tier


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def counters(clock):
    return FakeCounterStore(clock)


def test_limit_th_call_admitted_next_rejected(counters):
    rl = RateLimiter(counters)
    results = [rl.check("k", 3, 60) for _ in range(4)]
    assert [r.admitted for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[-1].count == 4


def test_expiry_set_only_on_first_increment(counters):
    rl = RateLimiter(counters)
    for _ in range(5):
        rl.check("k", 10, 60)
    assert counters.expiry_calls == [("ratelimit:k", 60)]


def test_window_reset_after_expiry(counters, clock):
    rl = RateLimiter(counters)
    for _ in range(3):
        rl.check("k", 2, 60)
    clock.advance(60)
    result = rl.check("k", 2, 60)
    assert result.admitted
    assert result.count == 1


def test_window_starts_at_first_use(counters, clock):
    rl = RateLimiter(counters)
    clock.advance(37)
    rl.check("k", 1, 60)
    clock.advance(59)
    assert not rl.check("k", 1, 60).admitted
    clock.advance(1)
    assert rl.check("k", 1, 60).admitted


def test_scenario_anonymous_twenty_per_minute(counters):
    rl = RateLimiter(counters)
    tier = select_upload_tier(Anonymous(ip="1.2.3.4"))
    results = [rl.check(tier.key, tier.limit, tier.window_seconds) for _ in range(21)]
    assert all(r.admitted for r in results[:20])
    assert not results[20].admitted
    assert results[20].remaining == 0


def test_scenario_api_key_custom_limit(counters):
    rl = RateLimiter(counters)
    principal = ApiKeyPrincipal(user_id="u1", api_key_id="key_1", key_prefix="px_abcdefgh", rate_limit=5)
    tier = select_upload_tier(principal)
    results = [rl.check(tier.key, tier.limit, tier.window_seconds) for _ in range(6)]
    assert all(r.admitted for r in results[:5])
    assert not results[5].admitted
    assert results[5].limit == 5
    assert results[5].remaining == 0


def test_unconfigured_store_always_admits():
    rl = RateLimiter(None)
    assert not rl.enabled
    for _ in range(100):
        result = rl.check("k", 1, 60)
        assert result.admitted
        assert result.remaining == 1


def test_failing_store_admits():
    counters = MagicMock()
    counters.increment.side_effect = ConnectionError("down")
    result = RateLimiter(counters).check("k", 1, 60)
    assert result.admitted
    assert result.count == 0


class FlakyExpiryCounterStore(FakeCounterStore):
    """Counter store whose first EXPIRE fails after the INCR went through."""

    def __init__(self, clock):
        super().__init__(clock)
        self.expiry_failures = 1

    def set_expiry(self, key, seconds):
        if self.expiry_failures:
            self.expiry_failures -= 1
            raise ConnectionError("expire timed out")
        super().set_expiry(key, seconds)


def test_failed_expiry_is_rearmed_once_over_limit(clock):
    counters = FlakyExpiryCounterStore(clock)
    rl = RateLimiter(counters)

    results = [rl.check("k", 2, 60) for _ in range(3)]
    assert [r.admitted for r in results] == [True, True, False]
    assert [r.count for r in results] == [1, 2, 3]
    assert counters.expiry_calls == [("ratelimit:k", 60)]

    clock.advance(3600)
    result = rl.check("k", 2, 60)
    assert result.admitted
    assert result.count == 1


def test_failed_expiry_keeps_real_count(clock):
    counters = FlakyExpiryCounterStore(clock)
    result = RateLimiter(counters).check("k", 1, 60)
    assert result.admitted
    assert result.count == 1
    assert result.remaining == 0


def test_ttl_lookup_failure_does_not_slide_window(counters, clock):
    rl = RateLimiter(counters)
    rl.check("k", 1, 60)
    counters.has_expiry = MagicMock(side_effect=ConnectionError("down"))
    assert not rl.check("k", 1, 60).admitted
    assert counters.expiry_calls == [("ratelimit:k", 60)]


@pytest.mark.parametrize("limit, window", [(0, 60), (-1, 60), (5, 0)])
def test_rejects_non_positive_arguments(counters, limit, window):
    with pytest.raises(ValueError):
        RateLimiter(counters).check("k", limit, window)


def test_headers_reflect_result(counters):
    result = RateLimiter(counters).check("k", 7, 60)
    assert result.headers() == {"X-RateLimit-Limit": "7", "X-RateLimit-Remaining": "6"}


def test_tier_table():
    tiers = RateLimitTiers()
    api = select_upload_tier(ApiKeyPrincipal("u1", "key_1", "px_x", 250), tiers)
    user = select_upload_tier(UserSession("u1", "a@b.co"), tiers)
    anon = select_upload_tier(Anonymous("9.9.9.9"), tiers)

    assert (api.name, api.key, api.limit, api.window_seconds) == ("apikey", "upload:apikey:key_1", 250, 60)
    assert (user.name, user.key, user.limit, user.window_seconds) == ("user", "upload:user:u1", 50, 60)
    assert (anon.name, anon.key, anon.limit, anon.window_seconds) == ("anonymous", "upload:9.9.9.9", 20, 60)


def test_api_key_without_limit_uses_default():
    tier = select_upload_tier(ApiKeyPrincipal("u1", "key_1", "px_x", 0))
    assert tier.limit == 100


def test_distinct_principals_never_share_keys():
    principals = [
        Anonymous("1.2.3.4"),
        Anonymous("1.2.3.5"),
        Anonymous("anonymous"),
        UserSession("u1", "a@b.co"),
        UserSession("u2", "c@d.co"),
        ApiKeyPrincipal("u1", "key_1", "px_a", 100),
        ApiKeyPrincipal("u1", "key_2", "px_b", 100),
    ]
    keys = [select_upload_tier(p).key for p in principals]
    assert len(set(keys)) == len(keys)


def test_same_principal_same_key():
    assert select_upload_tier(UserSession("u1", "a@b.co")).key == select_upload_tier(
        UserSession("u1", "other@b.co")
    ).key


def test_auth_limiter_initialization():
    """flask-limiter guarding the account endpoints attaches to the app"""
    app = Flask(__name__)
    app.config["RATELIMIT_ENABLED"] = False
    init_rate_limiter(app)
    assert "limiter" in app.extensions
    assert limiter.limit_manager.default_limits == []
