"""A de-duplicating work queue with delayed and rate-limited re-adds."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Hashable


class QueueShutDown(Exception):
    """Raised by get once the queue is shut down and holds no more items."""


class ExponentialRateLimiter:
    """Delays that double with every failure of an item, up to a maximum."""

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0) -> None:
        if base_delay < 0 or max_delay < 0:
            raise ValueError("delays must not be negative")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        """Record a failure of item and return how long to wait before retrying it."""
        with self._lock:
            exponent = self._failures.get(item, 0)
            self._failures[item] = exponent + 1
        try:
            return min(self.base_delay * 2**exponent, self.max_delay)
        except OverflowError:
            return self.max_delay

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class RateLimitingQueue:
    """A FIFO queue that holds an item at most once and hands it out to one consumer at a time.

    An item added while it is being processed is queued again when it is marked done.
    """

    def __init__(self, rate_limiter: ExponentialRateLimiter | None = None) -> None:
        self.rate_limiter = rate_limiter or ExponentialRateLimiter()
        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._timers: set[threading.Timer] = set()
        self._shutting_down = False

    def add(self, item: Hashable) -> None:
        """Queue item unless it is already waiting; ignored after shutdown."""
        with self._cond:
            if self._shutting_down or item in self._dirty:
                return
            self._dirty.add(item)
            if item not in self._processing:
                self._queue.append(item)
                self._cond.notify()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Queue item once delay seconds have passed."""
        if delay <= 0:
            self.add(item)
            return

        def fire() -> None:
            with self._cond:
                self._timers.discard(timer)
            self.add(item)

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._cond:
            if self._shutting_down:
                return
            self._timers.add(timer)
        timer.start()

    def add_rate_limited(self, item: Hashable) -> None:
        self.add_after(item, self.rate_limiter.when(item))

    def get(self, timeout: float | None = None) -> Hashable:
        """Take the next item, waiting for one.

        Raises TimeoutError if none arrives in time and QueueShutDown once the
        queue is shut down and empty.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._queue or self._shutting_down, timeout):
                raise TimeoutError("no item arrived in time")
            if not self._queue:
                raise QueueShutDown("queue is shut down")
            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item

    def done(self, item: Hashable) -> None:
        """Mark item as processed, queueing it again if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def forget(self, item: Hashable) -> None:
        self.rate_limiter.forget(item)

    def shut_down(self) -> None:
        """Refuse new items and wake every waiting consumer."""
        with self._cond:
            self._shutting_down = True
            timers, self._timers = self._timers, set()
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()

    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)