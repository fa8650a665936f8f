"""
Contact-form rate limiter: per-key moving window on `limits` memory storage.
"""
from __future__ import annotations

import time

from backend.web.routes.security import RateLimiter


def test_limit_applies_per_key():
    limiter = RateLimiter(2, 60)
    assert limiter.hit("10.0.0.1") == (True, 0)
    assert limiter.hit("10.0.0.1") == (True, 0)

    allowed, retry_after = limiter.hit("10.0.0.1")
    assert allowed is False
    assert 1 <= retry_after <= 60

    assert limiter.hit("10.0.0.2") == (True, 0)
    assert limiter.remaining("10.0.0.2") == 1


def test_window_expiry_frees_the_key():
    limiter = RateLimiter(2, 1)
    for i in range(200):
        limiter.hit(f"192.0.2.{i}")
    limiter.hit("192.0.2.0")
    assert limiter.hit("192.0.2.0")[0] is False

    time.sleep(1.2)
    assert limiter.remaining("192.0.2.0") == 2
    assert limiter.hit("192.0.2.0") == (True, 0)


def test_reset_clears_all_counters():
    limiter = RateLimiter(1, 300)
    limiter.hit("a")
    assert limiter.hit("a")[0] is False
    limiter.reset()
    assert limiter.hit("a") == (True, 0)
