"""周期任务调度器测试（虚拟时钟驱动）。"""
import asyncio

import pytest

from dbdash.tasks.scheduler import Scheduler


class Recorder:
    def __init__(self):
        self.ticks = []

    async def __call__(self, now):
        self.ticks.append(now)


class TestScheduling:
    async def test_task_fires_after_period(self, clock):
        scheduler = Scheduler(clock)
        body = Recorder()
        scheduler.add_task("metrics", 30, body)

        assert scheduler.tick() == []
        clock.advance(29)
        assert scheduler.tick() == []
        clock.advance(1)
        assert scheduler.tick() == ["metrics"]
        await scheduler.wait_idle()
        assert body.ticks == [clock.now()]

    async def test_run_on_start(self, clock):
        scheduler = Scheduler(clock)
        body = Recorder()
        scheduler.add_task("metrics", 30, body, run_on_start=True)
        assert scheduler.tick() == ["metrics"]
        await scheduler.wait_idle()
        assert len(body.ticks) == 1

    async def test_independent_periods(self, clock):
        scheduler = Scheduler(clock)
        fast, slow = Recorder(), Recorder()
        scheduler.add_task("fast", 30, fast)
        scheduler.add_task("slow", 60, slow)
        for _ in range(4):
            clock.advance(30)
            scheduler.tick()
            await scheduler.wait_idle()
        assert len(fast.ticks) == 4
        assert len(slow.ticks) == 2

    async def test_missed_periods_not_replayed(self, clock):
        scheduler = Scheduler(clock)
        body = Recorder()
        task = scheduler.add_task("metrics", 30, body)
        clock.advance(300)
        scheduler.tick()
        await scheduler.wait_idle()
        assert len(body.ticks) == 1
        assert task.next_run > clock.now()

    def test_duplicate_and_invalid_registration(self, clock):
        scheduler = Scheduler(clock)
        scheduler.add_task("metrics", 30, Recorder())
        with pytest.raises(ValueError):
            scheduler.add_task("metrics", 30, Recorder())
        with pytest.raises(ValueError):
            scheduler.add_task("other", 0, Recorder())


class TestOverlapAndFailure:
    async def test_tick_skipped_while_in_flight(self, clock):
        scheduler = Scheduler(clock)
        release = asyncio.Event()
        started = []

        async def slow(now):
            started.append(now)
            await release.wait()

        task = scheduler.add_task("metrics", 30, slow)
        clock.advance(30)
        scheduler.tick()
        await asyncio.sleep(0)
        assert task.in_flight

        clock.advance(30)
        assert scheduler.tick() == []
        assert task.skipped == 1

        release.set()
        await scheduler.wait_idle()
        assert not task.in_flight
        assert len(started) == 1
        assert task.runs == 1

    async def test_failure_does_not_stop_schedule(self, clock, caplog):
        scheduler = Scheduler(clock)
        calls = []

        async def flaky(now):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("ORA-03113: end-of-file on communication channel")

        task = scheduler.add_task("health_check", 60, flaky)
        clock.advance(60)
        scheduler.tick()
        await scheduler.wait_idle()
        assert task.failures == 1
        assert "ORA-03113" in task.last_error
        assert "health_check" in caplog.text

        clock.advance(60)
        scheduler.tick()
        await scheduler.wait_idle()
        assert len(calls) == 2
        assert task.runs == 1
        assert task.last_error is None

    async def test_one_failing_task_does_not_block_other(self, clock):
        scheduler = Scheduler(clock)
        ok = Recorder()

        async def broken(now):
            raise RuntimeError("boom")

        scheduler.add_task("broken", 30, broken)
        scheduler.add_task("ok", 30, ok)
        clock.advance(30)
        assert sorted(scheduler.tick()) == ["broken", "ok"]
        await scheduler.wait_idle()
        assert len(ok.ticks) == 1


class TestRunNowAndStop:
    async def test_run_now(self, clock):
        scheduler = Scheduler(clock)
        body = Recorder()
        scheduler.add_task("metrics", 30, body)
        assert await scheduler.run_now("metrics") is True
        assert body.ticks == [clock.now()]

    async def test_stop_all_waits_for_in_flight_and_prevents_new_ticks(self, clock):
        scheduler = Scheduler(clock, resolution=0.01)
        release = asyncio.Event()
        finished = []

        async def slow(now):
            await release.wait()
            finished.append(now)

        body = Recorder()
        scheduler.add_task("slow", 30, slow, run_on_start=True)
        scheduler.add_task("fast", 30, body)
        scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.tasks["slow"].in_flight

        stopping = asyncio.create_task(scheduler.stop_all())
        await asyncio.sleep(0.02)
        assert scheduler.stopping
        release.set()
        await stopping

        assert len(finished) == 1
        clock.advance(3600)
        assert scheduler.tick() == []
        assert await scheduler.run_now("fast") is False
        assert body.ticks == []

    async def test_status(self, clock):
        scheduler = Scheduler(clock)
        scheduler.add_task("metrics", 30, Recorder())
        status = scheduler.status()
        assert status[0]["name"] == "metrics"
        assert status[0]["period_seconds"] == 30
        assert status[0]["in_flight"] is False
