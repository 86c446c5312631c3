"""
周期任务调度模块 (Periodic Task Scheduler Module)

在单个事件循环内协作式地调度多个独立周期任务。每个任务有自己的周期和
IDLE → RUNNING → IDLE 状态：上一次执行尚未结束时到期的周期直接跳过而不排队，
数据库响应变慢时不会积压。任务体抛出的异常被捕获并记录，不会终止后续调度。
时间来源可注入，测试中通过推进虚拟时钟并调用 tick() 驱动。

Cooperative scheduler for independently timed periodic tasks within one event loop.
A tick that fires while the same task is still in flight is skipped, not queued.
Task failures are logged and never stop the recurring schedule. The clock is
injectable so tests can drive the scheduler by advancing a virtual clock.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

TaskBody = Callable[[datetime], Awaitable[None]]


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """真实 UTC 时钟。"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class TaskDescriptor:
    """周期任务描述。"""
    name: str
    period: timedelta
    body: TaskBody
    next_run: datetime
    last_run: Optional[datetime] = None
    in_flight: bool = False
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_error: Optional[str] = None
    _handle: Optional[asyncio.Task] = field(default=None, repr=False)

    def snapshot(self) -> dict:
        return {
            "name": self.name,
            "period_seconds": self.period.total_seconds(),
            "next_run": self.next_run.isoformat(),
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "in_flight": self.in_flight,
            "runs": self.runs,
            "skipped": self.skipped,
            "failures": self.failures,
            "last_error": self.last_error,
        }


class Scheduler:
    """周期任务调度器。"""

    def __init__(self, clock: Optional[Clock] = None, resolution: float = 1.0):
        self.clock = clock or SystemClock()
        self.resolution = resolution
        self._tasks: dict[str, TaskDescriptor] = {}
        self._loop_task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def stopping(self) -> bool:
        return self._stopping

    @property
    def tasks(self) -> dict[str, TaskDescriptor]:
        return dict(self._tasks)

    def add_task(self, name: str, period_seconds: float, body: TaskBody, run_on_start: bool = False) -> TaskDescriptor:
        if name in self._tasks:
            raise ValueError(f"Task {name} already registered")
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive")
        period = timedelta(seconds=period_seconds)
        now = self.clock.now()
        task = TaskDescriptor(name=name, period=period, body=body, next_run=now if run_on_start else now + period)
        self._tasks[name] = task
        logger.info("Scheduled task %s every %ss", name, period_seconds)
        return task

    def tick(self) -> list[str]:
        """触发所有已到期的任务，返回本次启动的任务名。需在运行中的事件循环内调用。"""
        if self._stopping:
            return []
        now = self.clock.now()
        started = []
        for task in self._tasks.values():
            if now < task.next_run:
                continue
            # 跳过错过的周期，不补跑
            while task.next_run <= now:
                task.next_run += task.period
            if task.in_flight:
                task.skipped += 1
                logger.warning("Task %s still running, skipping tick at %s", task.name, now.isoformat())
                continue
            self._spawn(task, now)
            started.append(task.name)
        return started

    def _spawn(self, task: TaskDescriptor, now: datetime) -> None:
        task.in_flight = True
        task._handle = asyncio.create_task(self._run(task, now), name=f"scheduler:{task.name}")

    async def _run(self, task: TaskDescriptor, now: datetime) -> None:
        try:
            await task.body(now)
            task.runs += 1
            task.last_error = None
        except Exception as e:
            task.failures += 1
            task.last_error = str(e)
            logger.error("Task %s failed at tick %s: %s", task.name, now.isoformat(), e, exc_info=True)
        finally:
            task.last_run = now
            task.in_flight = False
            task._handle = None

    async def run_now(self, name: str) -> bool:
        """
        立即执行一次指定任务并等待完成 (Run one task immediately and wait for it)

        Returns:
            bool: 任务正在执行或调度器正在停止时返回 False
        """
        task = self._tasks[name]
        if self._stopping or task.in_flight:
            return False
        self._spawn(task, self.clock.now())
        handle = task._handle
        if handle is not None:
            await handle
        return True

    async def wait_idle(self) -> None:
        """等待所有执行中的任务结束。"""
        handles = [t._handle for t in self._tasks.values() if t._handle is not None]
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)

    async def _run_loop(self) -> None:
        logger.info("Scheduler started with %d task(s)", len(self._tasks))
        while not self._stopping:
            self.tick()
            await asyncio.sleep(self.resolution)

    def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._run_loop(), name="scheduler:loop")

    async def stop_all(self) -> None:
        """
        优雅停止 (Graceful shutdown)

        停止调度新的周期，让执行中的任务自然结束；返回后不会再有任务触发。
        """
        self._stopping = True
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        await self.wait_idle()
        for name in self._tasks:
            logger.info("Stopped task: %s", name)

    def status(self) -> list[dict]:
        return [task.snapshot() for task in self._tasks.values()]
