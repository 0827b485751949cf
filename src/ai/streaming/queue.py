"""Bounded task queue — run at most N coroutine jobs at a time.

Tool calls are pushed here by the reply streamer so they execute in the
background while text deltas keep flowing to the client. The queue owns
no results: each job reports its own outcome through its own side
channel, and a failing job never takes the scheduler down with it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class BoundedTaskQueue:
    """Cooperative scheduler with a fixed concurrency limit.

    Usage::

        queue = BoundedTaskQueue(2)
        queue.enqueue(lambda: run_tool("lookup"))
        await queue.wait_for_idle()
    """

    def __init__(self, concurrency: int) -> None:
        self._concurrency = max(1, concurrency)
        self._pending: deque[Callable[[], Awaitable[None]]] = deque()
        self._active = 0
        self._cancelled = False
        self._idle_waiters: list[asyncio.Future[None]] = []
        # Strong references so running tasks are not garbage collected
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_idle(self) -> bool:
        return self._active == 0 and not self._pending

    def enqueue(self, job: Callable[[], Awaitable[None]]) -> None:
        """Add a job and start it right away if a slot is free.

        Jobs enqueued after ``cancel()`` are dropped without being invoked.
        """
        if self._cancelled:
            return
        self._pending.append(job)
        self._process()

    def cancel(self) -> None:
        """Drop every job not yet started and release idle waiters.

        Jobs already running are left alone; aborting their own I/O is
        their responsibility.
        """
        self._cancelled = True
        self._pending.clear()
        self._resolve_idle()

    async def wait_for_idle(self) -> None:
        """Wait until nothing is pending or running.

        Returns immediately when already idle. Waiters registered before
        ``cancel()`` are released by it; later waiters still wait for jobs
        that were already running.
        """
        if self.is_idle:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        await waiter

    def _process(self) -> None:
        if self._cancelled:
            return
        while self._active < self._concurrency and self._pending:
            job = self._pending.popleft()
            self._active += 1
            task = asyncio.create_task(self._run(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        if self.is_idle:
            self._resolve_idle()

    async def _run(self, job: Callable[[], Awaitable[None]]) -> None:
        try:
            await job()
        except Exception:
            # Jobs report their own failures; keep the scheduler alive
            logger.exception("Queued job raised an unhandled exception")
        finally:
            self._active -= 1
            if self.is_idle:
                self._resolve_idle()
            self._process()

    def _resolve_idle(self) -> None:
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
