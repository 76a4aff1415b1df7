"""In-process fixed-window rate limiter.

Each key gets a window that opens on its first hit and lasts ``window_seconds``.
State lives in the process, so limits are per worker.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Iterable

from flask import Request, current_app

from app.zv.errors import RateLimited


@dataclass(frozen=True)
class RateLimit:
    window_seconds: int
    max_attempts: int


AUTH = RateLimit(window_seconds=15 * 60, max_attempts=5)
API = RateLimit(window_seconds=60, max_attempts=100)
UPLOAD = RateLimit(window_seconds=60 * 60, max_attempts=10)
REPORTS = RateLimit(window_seconds=60 * 60, max_attempts=10)
REPORT_MODERATION = RateLimit(window_seconds=60 * 60, max_attempts=100)

_CLEANUP_INTERVAL = 5 * 60
_MAX_WINDOW = max(l.window_seconds for l in (AUTH, API, UPLOAD, REPORTS, REPORT_MODERATION))


def make_key(parts: Iterable[object | None]) -> str:
    return "|".join(str(p) for p in parts if p is not None and str(p) != "")


class FixedWindowRateLimiter:
    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        # key -> (first_at, count)
        self._buckets: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def is_rate_limited(self, parts: Iterable[object | None], limit: RateLimit) -> bool:
        key = make_key(parts)
        if not key:
            return False
        now = self._clock()
        with self._lock:
            self._maybe_cleanup(now)
            cur = self._buckets.get(key)
            if cur is None or now - cur[0] > limit.window_seconds:
                self._buckets[key] = (now, 1)
                return False
            count = cur[1] + 1
            self._buckets[key] = (cur[0], count)
            return count > limit.max_attempts

    def reset(self, parts: Iterable[object | None]) -> None:
        key = make_key(parts)
        with self._lock:
            self._buckets.pop(key, None)

    def info(self, parts: Iterable[object | None], limit: RateLimit) -> tuple[int, float | None]:
        """Return (remaining attempts, reset timestamp or None when no window is open)."""
        key = make_key(parts)
        now = self._clock()
        with self._lock:
            cur = self._buckets.get(key)
        if cur is None or now - cur[0] > limit.window_seconds:
            return limit.max_attempts, None
        return max(0, limit.max_attempts - cur[1]), cur[0] + limit.window_seconds

    def retry_after(self, parts: Iterable[object | None], limit: RateLimit) -> int:
        _, reset_at = self.info(parts, limit)
        if reset_at is None:
            return 0
        return max(0, int(reset_at - self._clock()) + 1)

    def cleanup(self, now: float | None = None) -> int:
        now = self._clock() if now is None else now
        with self._lock:
            return self._cleanup_locked(now)

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup >= _CLEANUP_INTERVAL:
            self._cleanup_locked(now)

    def _cleanup_locked(self, now: float) -> int:
        stale = [k for k, (first_at, _) in self._buckets.items() if now - first_at > _MAX_WINDOW]
        for k in stale:
            del self._buckets[k]
        self._last_cleanup = now
        return len(stale)


def get_rate_limiter() -> FixedWindowRateLimiter:
    return current_app.extensions["rate_limiter"]


def enforce(parts: Iterable[object | None], limit: RateLimit, message: str = "Too many requests") -> None:
    """Raise RateLimited when the key is over its limit."""
    parts = list(parts)
    limiter = get_rate_limiter()
    if limiter.is_rate_limited(parts, limit):
        raise RateLimited(message, retry_after=limiter.retry_after(parts, limit))


def client_ip(req: Request) -> str:
    forwarded = req.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (req.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        return real_ip
    return req.remote_addr or "unknown"
