"""A timer wheel keyed by deadline, usable from threads and asyncio."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import threading
import time
from datetime import timedelta
from typing import Generic, TypeVar

T = TypeVar("T")


class Timer(Generic[T]):
    """Holds values until their deadline; deadlines are ``time.monotonic()`` seconds."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._heap: list[tuple[float, int]] = []
        self._tasks: dict[int, tuple[float, T]] = {}
        self._ids = itertools.count(1)
        self._waiters: set[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def timeout(self, duration: float | timedelta, value: T) -> int:
        """Schedule ``value`` after ``duration`` seconds and return its task id."""
        if isinstance(duration, timedelta):
            duration = duration.total_seconds()
        return self.timeout_at(time.monotonic() + duration, value)

    def timeout_at(self, execute_at: float, value: T) -> int:
        with self._lock:
            task_id = next(self._ids)
            self._tasks[task_id] = (execute_at, value)
            heapq.heappush(self._heap, (execute_at, task_id))
            self._wake()
        return task_id

    def cancel(self, task_id: int) -> T | None:
        """Remove a pending task and return its value, or None if it is gone."""
        with self._lock:
            entry = self._tasks.pop(task_id, None)
            if entry is None:
                return None
            self._wake()
        return entry[1]

    def poll(self, now: float) -> list[T]:
        """Remove and return every value due at or before ``now``, in deadline order."""
        with self._lock:
            return self._collect(now)

    async def wait_for_ready(self) -> list[T]:
        """Wait until at least one task is due and return all that are."""
        loop = asyncio.get_running_loop()
        while True:
            waiter = (loop, asyncio.Event())
            with self._lock:
                ready = self._collect(time.monotonic())
                if ready:
                    return ready
                head = self._head()
                self._waiters.add(waiter)
            try:
                delay = None if head is None else max(0.0, head[0] - time.monotonic())
                try:
                    await asyncio.wait_for(waiter[1].wait(), delay)
                except asyncio.TimeoutError:
                    pass
            finally:
                with self._lock:
                    self._waiters.discard(waiter)

    def next_deadline(self) -> float | None:
        with self._lock:
            head = self._head()
        return None if head is None else head[0]

    def _head(self) -> tuple[float, int] | None:
        while self._heap and self._heap[0][1] not in self._tasks:
            heapq.heappop(self._heap)
        return self._heap[0] if self._heap else None

    def _collect(self, now: float) -> list[T]:
        ready: list[T] = []
        while (head := self._head()) is not None and head[0] <= now:
            heapq.heappop(self._heap)
            ready.append(self._tasks.pop(head[1])[1])
        return ready

    def _wake(self) -> None:
        for loop, event in list(self._waiters):
            try:
                loop.call_soon_threadsafe(event.set)
            except RuntimeError:
                self._waiters.discard((loop, event))