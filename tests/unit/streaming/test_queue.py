"""Unit tests for BoundedTaskQueue — bounded concurrent job scheduling."""

import asyncio
import logging

import pytest

from src.ai.streaming.queue import BoundedTaskQueue


class ConcurrencyProbe:
    """Jobs that track how many of them run at the same time."""

    def __init__(self) -> None:
        self.running = 0
        self.peak = 0
        self.started: list[str] = []
        self.finished: list[str] = []

    def job(self, name: str, duration: float = 0.02):
        async def _job() -> None:
            self.running += 1
            self.peak = max(self.peak, self.running)
            self.started.append(name)
            try:
                await asyncio.sleep(duration)
            finally:
                self.running -= 1
                self.finished.append(name)

        return _job


class TestScheduling:
    @pytest.mark.asyncio
    async def test_runs_at_most_limit_jobs(self):
        """Three equal jobs with a limit of two never overlap three-wide."""
        probe = ConcurrencyProbe()
        queue = BoundedTaskQueue(2)

        for name in ("a", "b", "c"):
            queue.enqueue(probe.job(name))

        assert queue.active == 2
        assert queue.pending == 1

        await queue.wait_for_idle()

        assert probe.peak == 2
        assert probe.started == ["a", "b", "c"]
        # The third job only starts once one of the first two finished
        assert probe.finished[0] in ("a", "b")

    @pytest.mark.asyncio
    async def test_concurrency_clamped_to_one(self):
        probe = ConcurrencyProbe()
        queue = BoundedTaskQueue(0)

        assert queue.concurrency == 1

        queue.enqueue(probe.job("a", 0.01))
        queue.enqueue(probe.job("b", 0.01))
        await queue.wait_for_idle()

        assert probe.peak == 1
        assert probe.finished == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_scheduler(self, caplog):
        ran: list[str] = []

        async def broken() -> None:
            raise RuntimeError("boom")

        async def healthy() -> None:
            ran.append("healthy")

        queue = BoundedTaskQueue(1)
        with caplog.at_level(logging.ERROR, logger="src.ai.streaming.queue"):
            queue.enqueue(broken)
            queue.enqueue(healthy)
            await queue.wait_for_idle()

        assert ran == ["healthy"]
        assert queue.is_idle
        assert "unhandled exception" in caplog.text


class TestWaitForIdle:
    @pytest.mark.asyncio
    async def test_idle_queue_returns_without_suspending(self):
        queue = BoundedTaskQueue(2)

        waiter = queue.wait_for_idle()
        with pytest.raises(StopIteration):
            waiter.send(None)

    @pytest.mark.asyncio
    async def test_all_waiters_released_together(self):
        probe = ConcurrencyProbe()
        queue = BoundedTaskQueue(1)
        queue.enqueue(probe.job("a", 0.02))

        results = await asyncio.gather(
            queue.wait_for_idle(),
            queue.wait_for_idle(),
            queue.wait_for_idle(),
        )

        assert results == [None, None, None]
        assert probe.finished == ["a"]


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_drops_pending_jobs_and_releases_waiters(self):
        probe = ConcurrencyProbe()
        queue = BoundedTaskQueue(1)
        queue.enqueue(probe.job("running", 0.05))
        queue.enqueue(probe.job("pending", 0.01))

        waiter = asyncio.create_task(queue.wait_for_idle())
        await asyncio.sleep(0)
        assert not waiter.done()

        queue.cancel()
        await asyncio.wait_for(waiter, timeout=0.01)

        assert queue.cancelled
        assert queue.pending == 0

        # The in-flight job still runs to completion
        await asyncio.sleep(0.08)
        assert probe.finished == ["running"]
        assert "pending" not in probe.started

    @pytest.mark.asyncio
    async def test_enqueue_after_cancel_is_dropped(self):
        invoked: list[str] = []

        async def job() -> None:
            invoked.append("job")

        queue = BoundedTaskQueue(2)
        queue.cancel()
        queue.enqueue(job)
        await asyncio.sleep(0.01)

        assert invoked == []
        assert queue.is_idle
