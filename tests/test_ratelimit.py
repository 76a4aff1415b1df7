import pytest

from app.zv import ratelimit
from app.zv.ratelimit import FixedWindowRateLimiter, RateLimit, make_key

from conftest import login, make_user


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_make_key_skips_empty_parts():
    assert make_key(["1.2.3.4", None, "", "login"]) == "1.2.3.4|login"
    assert make_key([42, "upload"]) == "42|upload"


def test_fixed_window_blocks_after_limit_then_resets():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(clock=clock)
    limit = RateLimit(window_seconds=60, max_attempts=3)

    assert [limiter.is_rate_limited(["k"], limit) for _ in range(3)] == [False, False, False]
    assert limiter.is_rate_limited(["k"], limit) is True
    assert limiter.retry_after(["k"], limit) == 61

    clock.now += 61
    assert limiter.is_rate_limited(["k"], limit) is False


def test_window_starts_on_first_hit_and_keys_are_independent():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(clock=clock)
    limit = RateLimit(window_seconds=10, max_attempts=1)

    assert limiter.is_rate_limited(["a"], limit) is False
    clock.now += 5
    assert limiter.is_rate_limited(["b"], limit) is False
    assert limiter.is_rate_limited(["a"], limit) is True
    clock.now += 6
    # "a" window (opened at t=1000) has passed, "b" (opened at t=1005) has not.
    assert limiter.is_rate_limited(["a"], limit) is False
    assert limiter.is_rate_limited(["b"], limit) is True


def test_reset_and_info():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(clock=clock)
    limit = RateLimit(window_seconds=60, max_attempts=5)

    remaining, reset_at = limiter.info(["k"], limit)
    assert remaining == 5
    assert reset_at is None

    limiter.is_rate_limited(["k"], limit)
    limiter.is_rate_limited(["k"], limit)
    remaining, reset_at = limiter.info(["k"], limit)
    assert remaining == 3
    assert reset_at == pytest.approx(1060.0)

    limiter.reset(["k"])
    assert limiter.info(["k"], limit)[0] == 5


def test_cleanup_drops_expired_windows():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(clock=clock)
    limit = RateLimit(window_seconds=10, max_attempts=5)
    limiter.is_rate_limited(["a"], limit)
    limiter.is_rate_limited(["b"], limit)
    assert limiter.cleanup(now=clock.now + 11) == 0
    assert limiter.cleanup(now=clock.now + 2 * 60 * 60) == 2


def test_login_rate_limited_after_five_attempts(app, client):
    make_user(app, "p@example.com")
    for _ in range(ratelimit.AUTH.max_attempts):
        r = client.post("/auth/login", json={"email": "p@example.com", "password": "wrong-password"})
        assert r.status_code == 401
    r = client.post("/auth/login", json={"email": "p@example.com", "password": "wrong-password"})
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0


def test_register_rate_limited_per_ip(app, client):
    for i in range(ratelimit.AUTH.max_attempts):
        r = client.post("/auth/register", json={"email": f"new{i}@example.com", "password": "long-enough-password"})
        assert r.status_code == 201
    r = client.post("/auth/register", json={"email": "late@example.com", "password": "long-enough-password"})
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0


def test_report_creation_rate_limited_per_user(app, client):
    make_user(app, "m@example.com", "PLAYER", "MASTER")
    login(client, "m@example.com")
    # Rejected submissions still count towards the limit.
    for _ in range(ratelimit.REPORTS.max_attempts):
        r = client.post("/api/reports", json={"group_id": 1, "description": "short"})
        assert r.status_code == 400
    r = client.post("/api/reports", json={"group_id": 1, "description": "short"})
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0


def test_upload_rate_limited_per_user(app, client):
    make_user(app, "p@example.com")
    login(client, "p@example.com")
    for _ in range(ratelimit.UPLOAD.max_attempts):
        r = client.post("/api/upload", data={"type": "avatar"}, content_type="multipart/form-data")
        assert r.status_code == 400
    r = client.post("/api/upload", data={"type": "avatar"}, content_type="multipart/form-data")
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0


def test_client_ip_prefers_forwarded_header(app):
    with app.test_request_context("/", headers={"X-Forwarded-For": "10.0.0.1, 10.0.0.2"}):
        from flask import request

        assert ratelimit.client_ip(request) == "10.0.0.1"
    with app.test_request_context("/", headers={"X-Real-IP": "10.0.0.9"}):
        from flask import request

        assert ratelimit.client_ip(request) == "10.0.0.9"
