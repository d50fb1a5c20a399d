import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

import threading

import pytest

from utils.rate_limiter import FailureCounter, RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def test_consecutive_starts_are_spaced():
    clock = FakeClock()
    limiter = RateLimiter(5, 0.5, clock=clock, sleep=clock.sleep)
    starts = []

    for _ in range(3):
        with limiter.slot():
            starts.append(clock.now)

    assert starts == [100.0, 100.5, 101.0]


def test_no_wait_after_idle_period():
    clock = FakeClock()
    limiter = RateLimiter(5, 0.5, clock=clock, sleep=clock.sleep)

    with limiter.slot():
        pass
    clock.now += 10
    with limiter.slot():
        assert clock.now == 110.0


def test_concurrency_is_bounded():
    limiter = RateLimiter(2, 0.0)
    active = []
    peak = []
    lock = threading.Lock()
    release = threading.Event()

    def worker():
        with limiter.slot():
            with lock:
                active.append(1)
                peak.append(len(active))
            release.wait(0.05)
            with lock:
                active.pop()

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert max(peak) <= 2


def test_invalid_concurrency():
    with pytest.raises(ValueError):
        RateLimiter(0)


def test_failure_counter_threshold():
    counter = FailureCounter(threshold=2)
    counter.record_failure()
    counter.record_failure()
    assert not counter.exceeded

    assert counter.record_failure() == 3
    assert counter.exceeded

    counter.record_success()
    assert counter.consecutive == 0
    assert not counter.exceeded


def test_failure_counter_reset():
    counter = FailureCounter(threshold=0)
    counter.record_failure()
    assert counter.exceeded
    counter.reset()
    assert not counter.exceeded
