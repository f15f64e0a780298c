from __future__ import annotations

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        raise NotImplementedError


class Scheduler(ABC):
    """Timer capability handed to the game engine.

    Delays are in milliseconds. Callbacks run on the scheduler's own thread of
    control (the event loop, or whoever calls `ManualScheduler.advance`).
    """

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    @abstractmethod
    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


@dataclass(eq=False, slots=True)
class _ManualEntry(TimerHandle):
    due_ms: float
    callback: Callable[[], None]
    interval_ms: float | None = None
    _cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Virtual clock. Nothing fires until `advance()` moves time forward.

    Used by tests and by anything that wants to replay a round deterministically.
    Timers due at the same instant fire in the order they were scheduled.
    """

    def __init__(self) -> None:
        self._now_ms: float = 0.0
        self._queue: list[tuple[float, int, _ManualEntry]] = []
        self._seq = itertools.count()

    @property
    def now_ms(self) -> float:
        return self._now_ms

    def pending(self) -> int:
        return sum(1 for _, _, e in self._queue if not e.cancelled)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        entry = _ManualEntry(due_ms=self._now_ms + max(delay_ms, 0.0), callback=callback)
        self._push(entry)
        return entry

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        entry = _ManualEntry(due_ms=self._now_ms + interval_ms, callback=callback, interval_ms=interval_ms)
        self._push(entry)
        return entry

    def advance(self, ms: float) -> int:
        """Move the clock forward by `ms`, firing everything that falls due.

        Returns the number of callbacks run.
        """

        target = self._now_ms + ms
        fired = 0
        while self._queue:
            due, _, entry = self._queue[0]
            if due > target:
                break
            heapq.heappop(self._queue)
            if entry.cancelled:
                continue
            self._now_ms = due
            if entry.interval_ms is not None:
                entry.due_ms = due + entry.interval_ms
                self._push(entry)
            entry.callback()
            fired += 1
        self._now_ms = target
        return fired

    def run_until_idle(self, limit_ms: float = 3_600_000) -> int:
        """Fire one-shot timers until none remain (recurring timers keep time moving)."""

        fired = 0
        start = self._now_ms
        while self._queue and self._now_ms - start < limit_ms:
            live = [(d, e) for d, _, e in self._queue if not e.cancelled]
            if not live:
                self._queue.clear()
                break
            next_due = min(d for d, _ in live)
            fired += self.advance(next_due - self._now_ms)
        return fired

    def _push(self, entry: _ManualEntry) -> None:
        heapq.heappush(self._queue, (entry.due_ms, next(self._seq), entry))


class _AsyncioHandle(TimerHandle):
    def __init__(self) -> None:
        self._inner: asyncio.TimerHandle | None = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self._inner is not None:
            self._inner.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Runs engine timers on an asyncio event loop.

    Must be created from inside the loop it schedules on (e.g. a FastAPI route).
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _AsyncioHandle()

        def _run() -> None:
            if not handle.cancelled:
                callback()

        handle._inner = self._loop.call_later(max(delay_ms, 0.0) / 1000.0, _run)
        return handle

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        handle = _AsyncioHandle()
        delay_s = interval_ms / 1000.0
        # Reschedule from the planned deadline so intervals don't drift.
        next_at = self._loop.time() + delay_s

        def _run() -> None:
            nonlocal next_at
            if handle.cancelled:
                return
            next_at += delay_s
            handle._inner = self._loop.call_at(next_at, _run)
            callback()

        handle._inner = self._loop.call_at(next_at, _run)
        return handle
