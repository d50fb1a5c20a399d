from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Bounds calls to an external API: at most `max_concurrent` in flight and
    at least `min_interval` seconds between two consecutive starts.
    """

    def __init__(
        self,
        max_concurrent: int = 5,
        min_interval: float = 0.5,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._start_lock = threading.Lock()
        self._next_start = 0.0

    @contextmanager
    def slot(self) -> Iterator[None]:
        self._slots.acquire()
        try:
            with self._start_lock:
                wait = self._next_start - self._clock()
                if wait > 0:
                    self._sleep(wait)
                self._next_start = self._clock() + self.min_interval
            yield
        finally:
            self._slots.release()


class FailureCounter:
    """Consecutive failure count shared by every fetch in a batch."""

    def __init__(self, threshold: int = 20):
        self.threshold = threshold
        self._consecutive = 0
        self._lock = threading.Lock()

    def record_success(self) -> None:
        with self._lock:
            self._consecutive = 0

    def record_failure(self) -> int:
        with self._lock:
            self._consecutive += 1
            return self._consecutive

    @property
    def consecutive(self) -> int:
        with self._lock:
            return self._consecutive

    @property
    def exceeded(self) -> bool:
        return self.consecutive > self.threshold

    def reset(self) -> None:
        with self._lock:
            self._consecutive = 0
