"""
Bucketed rolling window of call outcomes.

The lookback is split into ``bucket_count`` fixed slices of equal width.
Outcomes land in the slice covering their timestamp; slices that fall out of
the lookback are discarded as time moves on, so totals always describe the
last ``window_duration`` seconds at bucket granularity.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass


@dataclass
class OutcomeBucket:
    """Outcome counts for one slice of the window."""

    index: int
    successes: int = 0
    failures: int = 0

    @property
    def total(self) -> int:
        return self.successes + self.failures


@dataclass(frozen=True)
class WindowTotals:
    successes: int = 0
    failures: int = 0

    @property
    def total(self) -> int:
        return self.successes + self.failures

    @property
    def failure_ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return self.failures / self.total


class RollingWindow:
    """Success/failure counts over the last ``window_duration`` seconds.

    Not thread-safe; the owning circuit breaker serializes access.
    """

    def __init__(self, window_duration: float = 10.0, bucket_count: int = 10):
        if window_duration <= 0:
            raise ValueError("Window duration must be positive")
        if bucket_count < 1:
            raise ValueError("Bucket count must be at least 1")

        self.window_duration = window_duration
        self.bucket_count = bucket_count
        self.bucket_width = window_duration / bucket_count
        self._buckets: deque[OutcomeBucket] = deque()

    def _index(self, now: float) -> int:
        return math.floor(now / self.bucket_width)

    def _roll(self, now: float) -> int:
        """Drop buckets outside the lookback and return the current index."""
        current = self._index(now)
        oldest = current - self.bucket_count + 1
        while self._buckets and self._buckets[0].index < oldest:
            self._buckets.popleft()
        return current

    def record(self, success: bool, now: float) -> None:
        current = self._roll(now)

        if not self._buckets or self._buckets[-1].index < current:
            self._buckets.append(OutcomeBucket(index=current))
        # A clock that steps backwards still lands in the newest bucket.
        bucket = self._buckets[-1]

        if success:
            bucket.successes += 1
        else:
            bucket.failures += 1

    def totals(self, now: float) -> WindowTotals:
        self._roll(now)
        return WindowTotals(
            successes=sum(b.successes for b in self._buckets),
            failures=sum(b.failures for b in self._buckets),
        )

    def buckets(self, now: float) -> list[OutcomeBucket]:
        self._roll(now)
        return list(self._buckets)

    def reset(self) -> None:
        self._buckets.clear()
