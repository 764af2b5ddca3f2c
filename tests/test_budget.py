"""
Tests for the shared rate budget.
"""

import threading

from requests.structures import CaseInsensitiveDict

from feeds.budget import RateBudget


class TestRateBudget:
    def test_unknown_until_observed(self):
        b = RateBudget()
        assert b.remaining is None
        assert not b.is_low(10)
        assert b.seconds_until_reset() is None

    def test_never_negative(self):
        b = RateBudget()
        b.update(remaining=-3)
        assert b.remaining == 0
        assert RateBudget(remaining=-1).remaining == 0

    def test_last_writer_wins(self):
        b = RateBudget()
        b.update(remaining=100, limit=5000, reset_at=1000.0)
        b.update(remaining=4999)
        assert b.snapshot() == (4999, 5000, 1000.0)

    def test_from_headers(self):
        b = RateBudget()
        b.update_from_headers(CaseInsensitiveDict({
            "x-ratelimit-remaining": "57",
            "x-ratelimit-limit": "60",
            "x-ratelimit-reset": "1700000000",
        }))
        assert b.snapshot() == (57, 60, 1700000000.0)

    def test_garbled_headers_ignored(self):
        b = RateBudget(remaining=10)
        b.update_from_headers({"X-RateLimit-Remaining": "lots"})
        assert b.remaining == 10

    def test_is_low_at_floor(self):
        b = RateBudget(remaining=10)
        assert b.is_low(10)
        b.update(remaining=11)
        assert not b.is_low(10)

    def test_seconds_until_reset(self):
        b = RateBudget(reset_at=1060.0)
        assert b.seconds_until_reset(now=1000.0) == 60.0
        assert b.seconds_until_reset(now=2000.0) == 0.0

    def test_concurrent_updates_keep_a_reported_value(self):
        b = RateBudget()

        def writer(n):
            for i in range(200):
                b.update(remaining=n * 1000 + i)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert b.remaining % 1000 == 199
