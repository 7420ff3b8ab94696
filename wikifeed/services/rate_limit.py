from __future__ import annotations

import threading
import time
from typing import Callable

from wikifeed.errors import CrawlCancelled


class TokenBucket:
    """
    Shared request pacer. Every outbound request takes one token; tokens
    refill at `rate` per second and accumulate up to `burst`.
    Safe to share across threads.
    """

    def __init__(
        self,
        rate: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = float(rate)
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._updated_at = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated_at = now

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def acquire(self, cancel: threading.Event | None = None) -> None:
        while True:
            with self._lock:
                self._refill(self._clock())
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                delay = (1.0 - self._tokens) / self.rate

            if cancel is None:
                time.sleep(delay)
            elif cancel.wait(delay):
                raise CrawlCancelled("cancelled while waiting for a request token")
