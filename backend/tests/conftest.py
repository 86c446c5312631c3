"""
仪表盘测试基础配置

提供虚拟时钟、内存指标源、命令执行器替身、SQLite in-memory 异步存储和 FastAPI 测试客户端等通用 fixture。
所有测试使用隔离的 SQLite 数据库，不依赖真实 Oracle/PostgreSQL。
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import BigInteger
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from dbdash.core.config import Settings, ThresholdConfig
from dbdash.core.exceptions import CommandFailed, QueryFailed, SourceUnavailable
from dbdash.schemas.snapshot import (
    ActiveSession,
    AlertLogEntry,
    InstanceInfo,
    LockInfo,
    MetricSnapshot,
    Parameter,
    SessionInfo,
    SystemStat,
    Tablespace,
    TopSql,
    WaitStat,
)
from dbdash.services.notifier import Notifier
from dbdash.services.source import CommandExecutor, MetricsSource
from dbdash.services.storage import Storage

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# SQLite 不支持 BigInteger autoincrement，编译时替换为 Integer
@compiles(BigInteger, "sqlite")
def compile_big_int_sqlite(type_, compiler, **kw):
    return "INTEGER"


# ── 虚拟时钟 ──────────────────────────────────────────────────────────
class FakeClock:
    """可手动推进的虚拟时钟。"""

    def __init__(self, start: datetime = T0):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now


# ── 指标源替身 ────────────────────────────────────────────────────────
class FakeMetricsSource(MetricsSource):
    """
    内存指标源。

    failing 中的方法名调用时抛出 QueryFailed；unreachable 为 True 时所有调用抛出 SourceUnavailable。
    """

    def __init__(self):
        self.system_stats = [
            SystemStat(name="user commits", value=120, unit="Per Second"),
            SystemStat(name="physical reads", value=4500, unit="Per Second"),
        ]
        self.session_info = SessionInfo(total=150, active=12, background=40, user_sessions=110)
        self.wait_stats = [
            WaitStat(wait_class="User I/O", total_waits=1000, time_waited_seconds=42.5, avg_wait_seconds=0.04),
            WaitStat(wait_class="Concurrency", total_waits=50, time_waited_seconds=3.0, avg_wait_seconds=0.06),
        ]
        self.instance_info: Optional[InstanceInfo] = InstanceInfo(
            instance_name="ORCL", host_name="db01", version="19.0.0.0.0", status="OPEN", database_status="ACTIVE",
        )
        self.tablespaces = [
            Tablespace(name="SYSTEM", total_mb=1000, used_mb=500, free_mb=500, used_pct=50.0, status="ONLINE"),
            Tablespace(name="USERS", total_mb=200, used_mb=100, free_mb=100, used_pct=50.0, status="ONLINE"),
        ]
        self.active_sessions = [
            ActiveSession(sid=101, serial=7, username="APP", status="ACTIVE", last_call_seconds=12),
        ]
        self.top_sql = [TopSql(sql_id="abc123", text="SELECT * FROM orders", executions=10, elapsed_seconds=2.5)]
        self.locks: list[LockInfo] = []
        self.parameters = [Parameter(name="processes", value="300", is_default=False)]
        self.alert_log: list[AlertLogEntry] = []
        self.last_backup: Optional[datetime] = T0 - timedelta(hours=2)

        self.failing: set[str] = set()
        self.unreachable = False
        self.calls: dict[str, int] = {}
        self.closed = False

    async def _result(self, name: str, value):
        self.calls[name] = self.calls.get(name, 0) + 1
        await asyncio.sleep(0)
        if self.unreachable:
            raise SourceUnavailable("Oracle database unreachable", "ORA-12541: TNS:no listener")
        if name in self.failing:
            raise QueryFailed(f"{name} failed", "ORA-00942: table or view does not exist")
        return value

    async def get_system_stats(self):
        return await self._result("get_system_stats", list(self.system_stats))

    async def get_session_info(self):
        return await self._result("get_session_info", self.session_info)

    async def get_wait_events(self):
        return await self._result("get_wait_events", list(self.wait_stats))

    async def get_instance_info(self):
        return await self._result("get_instance_info", self.instance_info)

    async def get_tablespace_usage(self):
        return await self._result("get_tablespace_usage", list(self.tablespaces))

    async def get_active_sessions(self):
        return await self._result("get_active_sessions", list(self.active_sessions))

    async def get_top_sql(self):
        return await self._result("get_top_sql", list(self.top_sql))

    async def get_lock_information(self):
        return await self._result("get_lock_information", list(self.locks))

    async def get_database_parameters(self):
        return await self._result("get_database_parameters", list(self.parameters))

    async def get_alert_log(self):
        return await self._result("get_alert_log", list(self.alert_log))

    async def get_last_backup_time(self):
        return await self._result("get_last_backup_time", self.last_backup)

    async def close(self):
        self.closed = True


class FakeCommandExecutor(CommandExecutor):
    """记录执行过的语句；fail 为 True 时抛出 CommandFailed。"""

    def __init__(self):
        self.statements: list[str] = []
        self.fail = False

    async def run_statement(self, sql: str) -> None:
        if self.fail:
            raise CommandFailed(f"Command failed: {sql}", "ORA-00031: session marked for kill")
        self.statements.append(sql)


class RecordingNotifier(Notifier):
    """记录每次通知的告警候选。"""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings or Settings(email_enabled=False, webhook_enabled=False))
        self.sent = []

    async def notify(self, candidate) -> None:
        self.sent.append(candidate)
        await super().notify(candidate)


def make_snapshot(at: datetime = T0, **sections) -> MetricSnapshot:
    """构造测试快照，未指定的分区使用默认空值。"""
    return MetricSnapshot(timestamp=at, **sections)


def make_settings(**overrides) -> Settings:
    values = {
        "storage_url": TEST_DATABASE_URL,
        "enable_scheduler": False,
        "email_enabled": False,
        "webhook_enabled": False,
        "oracle_password": "test",
    }
    values.update(overrides)
    return Settings(**values)


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> FakeMetricsSource:
    return FakeMetricsSource()


@pytest.fixture
def executor() -> FakeCommandExecutor:
    return FakeCommandExecutor()


@pytest.fixture
def thresholds() -> ThresholdConfig:
    return ThresholdConfig()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def storage() -> AsyncGenerator[Storage, None]:
    """每个测试一个独立的 in-memory SQLite 存储。"""
    store = Storage(TEST_DATABASE_URL, poolclass=StaticPool, connect_args={"check_same_thread": False})
    await store.init_schema()
    yield store
    await store.dispose()


@pytest_asyncio.fixture
async def app(source, executor, storage, clock):
    """装配好替身组件的应用；调度循环不启动，测试通过 run_now / tick 驱动。"""
    from dbdash.main import create_app

    application = create_app(
        make_settings(),
        source=source,
        executor=executor,
        storage=storage,
        clock=clock,
        start_scheduler=False,
    )
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供异步 HTTP 测试客户端（ASGITransport 不触发 lifespan）。"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
