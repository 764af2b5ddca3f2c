"""
Shared request budget. GitHub limits per credential, not per feed, so every
fetcher under one token reports into the same RateBudget.
"""

import threading
import time
from typing import Mapping


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class RateBudget:
    """
    Requests remaining in the current window, as last reported by the server.

    Updates overwrite (last writer wins); the server is the source of truth.
    """

    def __init__(self, remaining: int | None = None, limit: int | None = None, reset_at: float | None = None):
        self._lock = threading.Lock()
        self._remaining = max(0, remaining) if remaining is not None else None
        self._limit = limit
        self._reset_at = reset_at

    @property
    def remaining(self) -> int | None:
        with self._lock:
            return self._remaining

    @property
    def reset_at(self) -> float | None:
        with self._lock:
            return self._reset_at

    def update(self, remaining: int | None, limit: int | None = None, reset_at: float | None = None):
        with self._lock:
            if remaining is not None:
                self._remaining = max(0, remaining)
            if limit is not None:
                self._limit = limit
            if reset_at is not None:
                self._reset_at = reset_at

    def update_from_headers(self, headers: Mapping[str, str]):
        """Apply X-RateLimit-* headers. Missing or garbled values are ignored."""
        reset = _int_header(headers, "X-RateLimit-Reset")
        self.update(
            remaining=_int_header(headers, "X-RateLimit-Remaining"),
            limit=_int_header(headers, "X-RateLimit-Limit"),
            reset_at=float(reset) if reset is not None else None,
        )

    def snapshot(self) -> tuple[int | None, int | None, float | None]:
        with self._lock:
            return self._remaining, self._limit, self._reset_at

    def is_low(self, floor: int) -> bool:
        remaining = self.remaining
        return remaining is not None and remaining <= floor

    def seconds_until_reset(self, now: float | None = None) -> float | None:
        reset_at = self.reset_at
        if reset_at is None:
            return None
        now = time.time() if now is None else now
        return max(0.0, reset_at - now)

    def __repr__(self) -> str:
        remaining, limit, reset_at = self.snapshot()
        return f"RateBudget(remaining={remaining}, limit={limit}, reset_at={reset_at})"
