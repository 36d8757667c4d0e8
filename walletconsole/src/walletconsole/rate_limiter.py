"""
Per-address rate limiting using a sliding window.

Limits how often UTXOs can be fetched for the same address so the indexer
is not hammered by repeated refreshes.
"""

from __future__ import annotations

import math
import time
from collections import OrderedDict


class RateLimitExceeded(Exception):
    def __init__(self, key: str, retry_after: int):
        self.key = key
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit reached. Please wait {retry_after} second(s) before trying again."
        )


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter keyed by address.

    Each key keeps the timestamps of its calls inside the window. A call is
    allowed while fewer than `max_calls` timestamps remain in the window.
    The key map is bounded: once `max_keys` is reached, expired keys are
    pruned and then the least recently used key is evicted.
    """

    def __init__(self, max_calls: int, window_seconds: float, max_keys: int = 1024):
        """
        Initialize rate limiter.

        Args:
            max_calls: Calls allowed per key within the window
            window_seconds: Window length in seconds
            max_keys: Maximum number of tracked keys
        """
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._calls: OrderedDict[str, list[float]] = OrderedDict()
        self._rejections = 0

    @staticmethod
    def _normalize(key: str) -> str:
        return key.strip().lower()

    def _recent(self, key: str, now: float) -> list[float]:
        """Timestamps of `key` still inside the window, oldest first."""
        timestamps = self._calls.get(key)
        if timestamps is None:
            return []
        recent = [t for t in timestamps if now - t < self.window_seconds]
        if recent:
            self._calls[key] = recent
        else:
            del self._calls[key]
        return recent

    def _make_room(self, now: float) -> None:
        if len(self._calls) < self.max_keys:
            return
        self.prune(now)
        while len(self._calls) >= self.max_keys:
            self._calls.popitem(last=False)

    def check(self, key: str) -> bool:
        """
        Record a call for `key` if allowed.

        Returns True if allowed, False if rate limited (nothing recorded).
        """
        key = self._normalize(key)
        now = time.monotonic()
        recent = self._recent(key, now)

        if len(recent) >= self.max_calls:
            self._calls.move_to_end(key)
            self._rejections += 1
            return False

        if key not in self._calls:
            self._make_room(now)
        recent.append(now)
        self._calls[key] = recent
        self._calls.move_to_end(key)
        return True

    def seconds_until_next(self, key: str) -> int:
        """Whole seconds until `key` may call again (0 when not limited)."""
        key = self._normalize(key)
        now = time.monotonic()
        recent = self._recent(key, now)
        if len(recent) < self.max_calls:
            return 0
        oldest = min(recent)
        return max(0, math.ceil(self.window_seconds - (now - oldest)))

    def acquire(self, key: str) -> None:
        """
        Like check(), but raises instead of returning False.

        Raises:
            RateLimitExceeded: the key has no calls left in the window
        """
        if not self.check(key):
            raise RateLimitExceeded(self._normalize(key), self.seconds_until_next(key))

    def prune(self, now: float | None = None) -> int:
        """Drop keys whose calls have all expired. Returns the number dropped."""
        if now is None:
            now = time.monotonic()
        expired = [
            key
            for key, timestamps in self._calls.items()
            if all(now - t >= self.window_seconds for t in timestamps)
        ]
        for key in expired:
            del self._calls[key]
        return len(expired)

    def reset(self, key: str) -> None:
        """Forget the call history of one key."""
        self._calls.pop(self._normalize(key), None)

    def get_stats(self) -> dict:
        """Get rate limiter statistics."""
        return {
            "tracked_keys": len(self._calls),
            "max_keys": self.max_keys,
            "total_rejections": self._rejections,
        }

    def clear(self) -> None:
        """Clear all rate limit state."""
        self._calls.clear()
        self._rejections = 0
