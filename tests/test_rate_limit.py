"""Tests for the fixed-window rate limiter and its middleware.

Covers:
- Allow up to the limit, deny after, reset at the window edge
- retry_after rounding
- Independent keys and named limits
- Sweeping expired windows
- Limit string parsing
- 429 response body and X-RateLimit-* headers
"""

from unittest.mock import MagicMock

import pytest

from otw.errors import ValidationError
from otw.services.rate_limit_service import (
    LimitsCounterStore,
    MemoryCounterStore,
    RateLimit,
    RateLimiterService,
    parse_limit,
)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiterService({"default": "3/60", "admin": "5/60"}, clock=clock)


class TestFixedWindow:

    def test_allows_up_to_max(self, limiter):
        decisions = [limiter.check("1.2.3.4:/checkout") for _ in range(3)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]

    def test_denies_after_max(self, limiter, clock):
        for _ in range(3):
            limiter.check("ip:/x")
        clock.advance(15.5)
        decision = limiter.check("ip:/x")

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.retry_after == 45  # ceil(60 - 15.5)

    def test_allowed_again_at_window_edge(self, limiter, clock):
        for _ in range(4):
            limiter.check("ip:/x")
        clock.advance(59)
        assert limiter.check("ip:/x").allowed is False

        clock.advance(1)
        decision = limiter.check("ip:/x")
        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == clock.now + 60

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.check("ip:/a")
        assert limiter.check("ip:/a").allowed is False
        assert limiter.check("ip:/b").allowed is True

    def test_admin_limit(self, limiter):
        decisions = [limiter.check("ip:/admin/menu/bulk", "admin") for _ in range(6)]
        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        assert decisions[0].limit == 5

    def test_unknown_limit_name_falls_back_to_default(self, limiter):
        assert limiter.check("ip:/x", "nonexistent").limit == 3

    def test_default_limit_required(self):
        with pytest.raises(ValidationError):
            RateLimiterService({"admin": "5/60"})


class TestMemoryCounterStore:

    def test_sweep_removes_only_expired(self):
        store = MemoryCounterStore()
        store.increment("old", 10, now=0)
        store.increment("new", 100, now=0)

        assert store.sweep(now=50) == 1
        assert len(store) == 1

    def test_sweeper_thread_starts_once(self, limiter):
        thread = limiter.start_sweeper(3600)
        try:
            assert thread.daemon is True
            assert limiter.start_sweeper(3600) is thread
        finally:
            limiter.stop_sweeper()

    def test_zero_interval_disables_sweeper(self, limiter):
        assert limiter.start_sweeper(0) is None


class TestLimitsCounterStore:

    def test_delegates_to_limits_storage(self, clock):
        store = LimitsCounterStore("memory://")
        store.storage = MagicMock()
        store.storage.incr.return_value = 4
        store.storage.get_expiry.return_value = clock.now + 30

        limiter = RateLimiterService({"default": "3/60"}, store=store, clock=clock)
        decision = limiter.check("ip:/x")

        store.storage.incr.assert_called_once_with("default:ip:/x", 60)
        assert decision.allowed is False
        assert decision.retry_after == 30


class TestParseLimit:

    def test_parses(self):
        assert parse_limit("100/60") == RateLimit(100, 60)

    @pytest.mark.parametrize("value", ["100", "a/b", "0/60", "10/-1", ""])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_limit(value)


class TestMiddleware:

    @pytest.fixture
    def limited_app(self, app, clock):
        app.config["RATE_LIMIT_ENABLED"] = True
        original = app.extensions["rate_limiter"]
        app.extensions["rate_limiter"] = RateLimiterService(
            {"default": "2/60", "admin": "4/60"}, clock=clock
        )
        yield app
        app.config["RATE_LIMIT_ENABLED"] = False
        app.extensions["rate_limiter"] = original

    def test_headers_on_allowed_response(self, limited_app, client, clock):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "2"
        assert resp.headers["X-RateLimit-Remaining"] == "1"
        assert resp.headers["X-RateLimit-Reset"] == str(int(clock.now + 60))

    def test_429_when_over_limit(self, limited_app, client):
        client.get("/")
        client.get("/")
        resp = client.get("/")

        assert resp.status_code == 429
        body = resp.get_json()
        assert body["code"] == "RATE_LIMITED"
        assert body["retry_after"] == 60
        assert resp.headers["Retry-After"] == "60"
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    def test_admin_paths_use_admin_limit(self, limited_app, client, seed_data):
        resp = client.post("/admin/menu/bulk", json={})
        assert resp.headers["X-RateLimit-Limit"] == "4"

    def test_disabled_limiter_sets_no_headers(self, app, client):
        resp = client.get("/")
        assert "X-RateLimit-Limit" not in resp.headers
