"""
Rate-limited request scheduler shared by every network-bound component.

A single FIFO queue drained by one worker task. Two limits hold at the same time:
a minimum spacing of 1 / max_per_second between dispatches, and at most
max_per_second dispatches inside the current one-second window (the window start
resets whenever a full second has elapsed). Enqueue never fails; the call's own
exception is delivered through the returned future.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

from backend_walletsync.walletsync_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_PER_SECOND = 50
_WINDOW_SEC = 1.0


class RequestScheduler:
    """
    FIFO throttle for outbound calls.

    Callables are zero-argument and may be sync or async. Each dispatched call
    runs as its own task so slow responses do not hold up the queue; only the
    dispatch moments are spaced.
    """

    def __init__(
        self,
        max_per_second: int = DEFAULT_MAX_PER_SECOND,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_per_second <= 0:
            raise ValueError("max_per_second must be positive")
        self._max_per_second = int(max_per_second)
        self._min_interval = _WINDOW_SEC / self._max_per_second
        self._name = name
        self._clock = clock
        self._queue: deque[tuple[Callable[[], Any], asyncio.Future[Any]]] = deque()
        self._processing = False
        self._last_dispatch = float("-inf")
        self._window_start = float("-inf")
        self._dispatched_in_window = 0
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def max_per_second(self) -> int:
        return self._max_per_second

    def enqueue(self, fn: Callable[[], Awaitable[T]] | Callable[[], T]) -> asyncio.Future[T]:
        """Queue fn for dispatch; return a future resolved with its result or exception."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append((fn, future))
        if not self._processing:
            self._processing = True
            task = loop.create_task(self._drain())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
        return future

    async def _drain(self) -> None:
        try:
            while self._queue:
                now = self._clock()
                if now - self._window_start >= _WINDOW_SEC:
                    self._window_start = now
                    self._dispatched_in_window = 0

                if self._dispatched_in_window >= self._max_per_second:
                    await asyncio.sleep(max(0.0, _WINDOW_SEC - (now - self._window_start)))
                    continue

                since_last = now - self._last_dispatch
                if since_last < self._min_interval:
                    await asyncio.sleep(self._min_interval - since_last)

                if not self._queue:
                    break
                fn, future = self._queue.popleft()
                if future.cancelled():
                    continue
                self._last_dispatch = self._clock()
                self._dispatched_in_window += 1
                task = asyncio.ensure_future(self._invoke(fn, future))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
        finally:
            self._processing = False

    async def _invoke(self, fn: Callable[[], Any], future: asyncio.Future[Any]) -> None:
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
            return
        if not future.done():
            future.set_result(result)

    def clear(self) -> int:
        """Drop queued (not yet dispatched) calls; their futures are cancelled. Returns count dropped."""
        dropped = 0
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.cancel()
            dropped += 1
        if dropped:
            logger.info("rate_limiter_cleared", scheduler=self._name, dropped=dropped)
        return dropped

    def stats(self) -> dict[str, Any]:
        return {
            "name": self._name,
            "queue_length": len(self._queue),
            "requests_in_window": self._dispatched_in_window,
            "max_per_second": self._max_per_second,
            "processing": self._processing,
        }
