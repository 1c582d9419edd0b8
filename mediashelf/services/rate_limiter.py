"""Global throttle for outbound catalog requests."""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


class RateLimiter:
    """Bounds in-flight requests and spaces out request starts.

    Callers are admitted in submission order. A slot is held for the whole
    request; request starts are at least ``min_interval`` seconds apart no
    matter how many slots are free.
    """

    def __init__(self, max_concurrent: int = 4, min_interval: float = 0.3):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self._active = 0
        self._waiters: deque[asyncio.Future] = deque()
        self._gate = asyncio.Lock()
        self._last_start: Optional[float] = None

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def _acquire_slot(self) -> None:
        if self._active < self.max_concurrent and not self._waiters:
            self._active += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            # _release hands its slot straight to us, _active stays as is
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self._release()
            else:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1

    async def _wait_for_spacing(self) -> None:
        async with self._gate:
            loop = asyncio.get_running_loop()
            if self._last_start is not None:
                delay = self._last_start + self.min_interval - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_start = loop.time()

    @asynccontextmanager
    async def slot(self):
        """Hold one request slot for the duration of the block."""
        await self._acquire_slot()
        try:
            await self._wait_for_spacing()
            yield
        finally:
            self._release()

    async def run(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run ``fn`` once a slot is available."""
        async with self.slot():
            return await fn(*args, **kwargs)
