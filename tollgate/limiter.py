"""In-memory token bucket rate limiter keyed by an opaque identity string.

Buckets are created on first sight of a key and live for the lifetime of the
limiter. Without ``max_keys`` the key set grows without bound: every distinct
identity ever checked keeps a bucket in memory. Set ``max_keys`` to evict the
least recently checked bucket once the bound is reached.

With ``max_keys`` set, a check that already holds a bucket when it is evicted
finishes against that bucket while a later check for the same key starts a
fresh, full one. For that window two buckets exist for one key.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from .bucket import Bucket

if TYPE_CHECKING:  # pragma: no cover
    from .config import Settings

logger = logging.getLogger(__name__)

RETRY_MODES = ("fixed", "deficit")


@dataclass(frozen=True, slots=True)
class Decision:
    admitted: bool
    retry_after_seconds: int


class Limiter:
    """Admit or deny requests per key with a token bucket each.

    Usage:
        limiter = Limiter(capacity=10, refill_rate=1.0)
        decision = limiter.check("10.0.0.1")
        if not decision.admitted:
            ...  # reject, advertise decision.retry_after_seconds
    """

    def __init__(
        self,
        capacity: float = 10,
        refill_rate: float = 1.0,
        retry_after: int = 5,
        retry_mode: str = "fixed",
        max_keys: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity!r}")
        if refill_rate <= 0:
            raise ValueError(f"refill_rate must be positive, got {refill_rate!r}")
        if retry_after < 0:
            raise ValueError(f"retry_after must not be negative, got {retry_after!r}")
        if retry_mode not in RETRY_MODES:
            raise ValueError(f"retry_mode must be one of {RETRY_MODES}, got {retry_mode!r}")
        if max_keys is not None and max_keys < 1:
            raise ValueError(f"max_keys must be at least 1, got {max_keys!r}")
        self._capacity = float(capacity)
        self._rate = float(refill_rate)
        self._retry_after = int(retry_after)
        self._retry_mode = retry_mode
        self._max_keys = max_keys
        self._clock = clock
        self._buckets: OrderedDict[str, Bucket] = OrderedDict()
        # guards the mapping only; token arithmetic runs under each bucket's lock
        self._guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs) -> "Limiter":
        return cls(
            capacity=settings.RATE_LIMIT_CAPACITY,
            refill_rate=settings.RATE_LIMIT_REFILL_RATE,
            retry_after=settings.RATE_LIMIT_RETRY_AFTER,
            retry_mode=settings.RATE_LIMIT_RETRY_MODE,
            max_keys=settings.RATE_LIMIT_MAX_KEYS,
            **kwargs,
        )

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def refill_rate(self) -> float:
        return self._rate

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, key: object) -> bool:
        return key in self._buckets

    def _bucket_for(self, key: str) -> Bucket:
        with self._guard:
            bucket = self._buckets.get(key)
            if bucket is not None:
                if self._max_keys is not None:
                    self._buckets.move_to_end(key)
                return bucket
            bucket = Bucket(self._capacity, self._clock())
            self._buckets[key] = bucket
            logger.debug("created bucket for %r", key)
            if self._max_keys is not None:
                while len(self._buckets) > self._max_keys:
                    evicted, _ = self._buckets.popitem(last=False)
                    logger.debug("evicted bucket for %r", evicted)
            return bucket

    def _retry_hint(self, tokens: float) -> int:
        if self._retry_mode == "deficit":
            return max(1, math.ceil((1.0 - tokens) / self._rate))
        return self._retry_after

    def check(self, key: str) -> Decision:
        """Refill the key's bucket and try to take one token from it."""

        bucket = self._bucket_for(key)
        with bucket.lock:
            bucket.refill(self._clock(), self._capacity, self._rate)
            if bucket.try_consume():
                return Decision(admitted=True, retry_after_seconds=0)
            retry_after = self._retry_hint(bucket.tokens)
        logger.debug("denied %r, retry after %ss", key, retry_after)
        return Decision(admitted=False, retry_after_seconds=retry_after)

    def peek(self, key: str) -> float | None:
        """Return the tokens available to ``key`` right now, or None if unseen."""

        with self._guard:
            bucket = self._buckets.get(key)
        if bucket is None:
            return None
        with bucket.lock:
            return bucket.projected(self._clock(), self._capacity, self._rate)

    def reset(self, key: str) -> None:
        with self._guard:
            self._buckets.pop(key, None)
