#!/usr/bin/env python3
"""Timer primitives with the ``after``/``cancel`` contract of tkinter widgets."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable


class VirtualScheduler:
    """A virtual clock. Callbacks run only when time is advanced explicitly."""

    def __init__(self) -> None:
        self.now_ms = 0.0
        self._queue: list[tuple[float, int, Callable[[], None]]] = []
        self._cancelled: set[int] = set()
        self._counter = itertools.count()

    def after(self, delay_ms: float, callback: Callable[[], None]) -> int:
        handle = next(self._counter)
        heapq.heappush(self._queue, (self.now_ms + max(0.0, delay_ms), handle, callback))
        return handle

    def cancel(self, handle: int) -> None:
        self._cancelled.add(handle)

    @property
    def pending(self) -> int:
        return sum(1 for _, handle, _ in self._queue if handle not in self._cancelled)

    def step(self) -> bool:
        """Run the next due callback. Returns False when nothing is queued."""
        while self._queue:
            due, handle, callback = heapq.heappop(self._queue)
            if handle in self._cancelled:
                self._cancelled.discard(handle)
                continue
            self.now_ms = max(self.now_ms, due)
            callback()
            return True
        return False

    def advance(self, delay_ms: float) -> None:
        deadline = self.now_ms + delay_ms
        while self._queue:
            due, handle, _ = self._queue[0]
            if handle in self._cancelled:
                heapq.heappop(self._queue)
                self._cancelled.discard(handle)
                continue
            if due > deadline:
                break
            self.step()
        self.now_ms = deadline

    def run_until(self, predicate: Callable[[], bool], limit_ms: float = 3_600_000) -> None:
        deadline = self.now_ms + limit_ms
        while not predicate():
            if not self._queue or self._queue[0][0] > deadline:
                raise TimeoutError(f"Condition not met within {limit_ms} ms of virtual time")
            self.step()


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.loop = loop or asyncio.get_running_loop()

    def after(self, delay_ms: float, callback: Callable[[], None]) -> Any:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, callback)

    def cancel(self, handle: Any) -> None:
        handle.cancel()
