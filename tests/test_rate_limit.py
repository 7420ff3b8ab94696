from __future__ import annotations

import threading

import pytest

from wikifeed.errors import CrawlCancelled
from wikifeed.services.rate_limit import TokenBucket


class _Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_bucket_starts_full_and_refills():
    clock = _Clock()
    bucket = TokenBucket(rate=10, burst=2, clock=clock)

    assert bucket.try_acquire()
    assert bucket.try_acquire()
    assert not bucket.try_acquire()

    clock.now += 0.1
    assert bucket.try_acquire()
    assert not bucket.try_acquire()


def test_refill_is_capped_at_burst():
    clock = _Clock()
    bucket = TokenBucket(rate=100, burst=3, clock=clock)
    for _ in range(3):
        assert bucket.try_acquire()

    clock.now += 60
    assert sum(bucket.try_acquire() for _ in range(10)) == 3


def test_acquire_returns_immediately_with_tokens():
    bucket = TokenBucket(rate=1, burst=1)
    bucket.acquire()


def test_acquire_raises_when_cancelled_while_waiting():
    clock = _Clock()
    bucket = TokenBucket(rate=0.001, burst=1, clock=clock)
    bucket.acquire()
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(CrawlCancelled):
        bucket.acquire(cancel)


@pytest.mark.parametrize("rate, burst", [(0, 1), (-1, 1), (1, 0)])
def test_invalid_parameters(rate, burst):
    with pytest.raises(ValueError):
        TokenBucket(rate=rate, burst=burst)
