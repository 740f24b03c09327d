"""Token bucket state for a single identity key."""

from __future__ import annotations

import threading


class Bucket:
    __slots__ = ("tokens", "last_refill", "lock")

    def __init__(self, capacity: float, now: float) -> None:
        self.tokens = float(capacity)
        self.last_refill = now
        self.lock = threading.Lock()

    def refill(self, now: float, capacity: float, rate: float) -> None:
        """Add tokens for the time elapsed since the last refill.

        A clock that moved backwards counts as zero elapsed time.
        """

        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(float(capacity), self.tokens + elapsed * rate)
        self.last_refill = now

    def try_consume(self) -> bool:
        if self.tokens < 1.0:
            return False
        self.tokens -= 1.0
        return True

    def projected(self, now: float, capacity: float, rate: float) -> float:
        """Tokens the bucket would hold at ``now`` without mutating it."""

        elapsed = max(0.0, now - self.last_refill)
        return min(float(capacity), self.tokens + elapsed * rate)
