"""Deduplicating, rate-limited work queue.

Keys are coalesced while queued and never handed to two workers at once:
a key added while it is being processed is parked in the dirty set and
re-queued when the worker calls :meth:`RateLimitingQueue.done`.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from collections.abc import Callable, Hashable
from typing import Any

import structlog

logger = structlog.get_logger()


class RateLimitingQueue:
    """Thread-safe work queue with delayed and exponentially backed-off adds.

    Args:
        base_delay: Delay of the first rate-limited re-add, in seconds.
        max_delay: Upper bound of the rate-limited delay, in seconds.
        clock: Monotonic clock, replaceable in tests.
    """

    def __init__(
        self,
        base_delay: float = 0.005,
        max_delay: float = 1000.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._clock = clock

        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._ready_at: dict[Hashable, float] = {}
        self._sequence = itertools.count()
        self._failures: dict[Hashable, int] = {}
        self._shutting_down = False
        self._log = logger.bind(entity="queue")

    # =========================================================================
    # Adds
    # =========================================================================

    def add(self, item: Hashable) -> None:
        """Queue ``item`` unless it is already queued."""
        with self._cond:
            self._add_locked(item)

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Queue ``item`` once ``delay`` seconds have passed.

        An item waits at most once: a later deadline for an item that is
        already waiting is dropped, an earlier one replaces it.
        """
        if delay <= 0:
            self.add(item)
            return
        with self._cond:
            if self._shutting_down:
                return
            ready_at = self._clock() + delay
            current = self._ready_at.get(item)
            if current is not None and current <= ready_at:
                return
            self._ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._sequence), item))
            # Wake a getter so it can shorten its wait to the new deadline
            self._cond.notify()

    def add_rate_limited(self, item: Hashable) -> float:
        """Queue ``item`` after its per-item exponential backoff.

        Returns:
            The delay applied, in seconds.
        """
        with self._cond:
            failures = self._failures.get(item, 0)
            self._failures[item] = failures + 1
        delay = self.backoff_for(failures)
        self._log.debug("rate_limited_requeue", item=str(item), failures=failures + 1, delay=delay)
        self.add_after(item, delay)
        return delay

    def backoff_for(self, failures: int) -> float:
        """Delay applied after ``failures`` previous rate-limited adds."""
        try:
            delay = self._base_delay * (2**failures)
        except OverflowError:
            return self._max_delay
        return min(delay, self._max_delay)

    def forget(self, item: Hashable) -> None:
        """Reset the backoff of ``item``."""
        with self._cond:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        """Number of rate-limited adds of ``item`` since it was last forgotten."""
        with self._cond:
            return self._failures.get(item, 0)

    # =========================================================================
    # Processing
    # =========================================================================

    def get(self, timeout: float | None = None) -> Any | None:
        """Block until an item is available and mark it as processing.

        Args:
            timeout: Maximum seconds to wait; None waits indefinitely.

        Returns:
            The next item, or None when the queue is shut down and drained
            or ``timeout`` expired.
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                self._promote_due_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._dirty.discard(item)
                    self._processing.add(item)
                    return item
                if self._shutting_down:
                    return None

                wait = self._next_wait_locked()
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def _promote_due_locked(self) -> None:
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            ready_at, _, item = heapq.heappop(self._waiting)
            if self._ready_at.get(item) != ready_at:
                continue  # superseded by an earlier deadline
            del self._ready_at[item]
            self._add_locked(item)

    def _next_wait_locked(self) -> float | None:
        while self._waiting and self._ready_at.get(self._waiting[0][2]) != self._waiting[0][0]:
            heapq.heappop(self._waiting)
        if not self._waiting:
            return None
        return max(0.0, self._waiting[0][0] - self._clock())

    def done(self, item: Hashable) -> None:
        """Mark ``item`` as processed, re-queueing it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def shut_down(self) -> None:
        """Stop accepting items and release idle getters.

        Items already queued are still handed out; delayed items are dropped.
        """
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._ready_at.clear()
            pending = len(self._queue)
            self._cond.notify_all()
        self._log.info("queue_shut_down", pending=pending)

    @property
    def shutting_down(self) -> bool:
        """Whether :meth:`shut_down` was called."""
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def waiting(self) -> int:
        """Number of items waiting for a delayed add to come due."""
        with self._cond:
            return len(self._ready_at)
