"""Tests for TaskScheduler."""

import asyncio

import pytest

from relay_keeper.application.stream.scheduler import TaskScheduler


@pytest.fixture
def scheduler():
    return TaskScheduler()


class TestSchedule:

    async def test_runs_after_delay(self, scheduler):
        calls = []

        async def job():
            calls.append("ran")
            return 42

        task = scheduler.schedule("cam_1", job, delay=0.01)
        assert calls == []
        assert scheduler.pending("cam_1") == 1

        assert await task == 42
        assert calls == ["ran"]

        await asyncio.sleep(0)
        assert scheduler.pending("cam_1") == 0

    async def test_failure_is_counted_not_raised_elsewhere(self, scheduler):
        async def boom():
            raise RuntimeError("boom")

        task = scheduler.schedule("cam_1", boom)
        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)

        assert scheduler.get_stats()["failed"] == 1
        assert scheduler.pending() == 0


class TestCancel:

    async def test_cancel_by_key(self, scheduler):
        calls = []

        async def job(name):
            calls.append(name)

        scheduler.schedule("cam_1", lambda: job("a"), delay=0.05)
        scheduler.schedule("cam_1", lambda: job("b"), delay=0.05)
        scheduler.schedule("cam_2", lambda: job("c"), delay=0.01)

        assert scheduler.cancel("cam_1") == 2
        await asyncio.sleep(0.1)

        assert calls == ["c"]
        assert scheduler.pending() == 0

    async def test_cancel_skips_current_task(self, scheduler):
        result = {}

        async def job():
            result["cancelled"] = scheduler.cancel("cam_1")
            await asyncio.sleep(0)
            result["finished"] = True

        await scheduler.schedule("cam_1", job)

        assert result == {"cancelled": 0, "finished": True}

    async def test_cancel_all(self, scheduler):
        async def job():
            await asyncio.sleep(1)

        scheduler.schedule("cam_1", job)
        scheduler.schedule("cam_2", job)

        assert scheduler.cancel_all() == 2
        await asyncio.sleep(0.01)
        assert scheduler.pending() == 0
        assert scheduler.get_stats()["cancelled"] == 2

    async def test_cancel_unknown_key(self, scheduler):
        assert scheduler.cancel("missing") == 0


class TestDrain:

    async def test_drain_waits_for_chained_tasks(self, scheduler):
        order = []

        async def second():
            order.append("second")

        async def first():
            order.append("first")
            scheduler.schedule("cam_1", second, delay=0.01)

        scheduler.schedule("cam_1", first, delay=0.01)
        await scheduler.drain()

        assert order == ["first", "second"]
