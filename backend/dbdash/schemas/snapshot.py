"""
指标快照的 Pydantic 数据模型。

一次采集产生一个不可变的 MetricSnapshot；所有子记录在 MetricsSource 边界完成
字段映射，缺失字段使用显式默认值。采集失败的分区记录在 missing_sections 中。
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

# 快照分区名称 (Snapshot section names)
SECTIONS = (
    "system_stats",
    "session_info",
    "wait_stats",
    "instance_info",
    "tablespaces",
    "active_sessions",
    "top_sql",
    "locks",
    "parameters",
    "alert_log",
)


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class SystemStat(_Record):
    name: str
    value: float = 0.0
    unit: str = ""


class SessionInfo(_Record):
    total: int = 0
    active: int = 0
    background: int = 0
    user_sessions: int = 0


class WaitStat(_Record):
    wait_class: str
    total_waits: int = 0
    time_waited_seconds: float = 0.0
    avg_wait_seconds: float = 0.0


class InstanceInfo(_Record):
    instance_name: str = ""
    host_name: str = ""
    version: str = ""
    status: str = ""
    database_status: str = ""
    startup_time: Optional[datetime] = None


class Tablespace(_Record):
    name: str
    total_mb: float = 0.0
    used_mb: float = 0.0
    free_mb: float = 0.0
    used_pct: float = 0.0
    auto_extend: bool = False
    status: str = ""


class ActiveSession(_Record):
    sid: int
    serial: int = 0
    username: str = ""
    status: str = ""
    program: str = ""
    machine: str = ""
    sql_id: str = ""
    event: str = ""
    wait_class: str = ""
    seconds_in_wait: float = 0.0
    last_call_seconds: float = 0.0
    blocking_session: Optional[int] = None
    sql_text: str = ""


class TopSql(_Record):
    sql_id: str
    text: str = ""
    executions: int = 0
    elapsed_seconds: float = 0.0
    cpu_seconds: float = 0.0
    buffer_gets: int = 0
    disk_reads: int = 0
    rows_processed: int = 0


class LockInfo(_Record):
    sid: int
    serial: int = 0
    username: str = ""
    owner: str = ""
    object_name: str = ""
    object_type: str = ""
    locked_mode: int = 0
    lock_mode_desc: str = ""


class Parameter(_Record):
    name: str
    value: str = ""
    is_default: bool = True
    description: str = ""


class AlertLogEntry(_Record):
    text: str
    time: Optional[datetime] = None
    level: int = 0
    message_type: int = 0


class MetricSnapshot(_Record):
    """
    一次采集时刻的完整指标快照 (Point-in-time capture of all monitored metrics)

    创建后不可修改；追加到 MetricsHistory 后由其独占持有。
    """
    timestamp: datetime
    system_stats: tuple[SystemStat, ...] = ()
    session_info: SessionInfo = SessionInfo()
    wait_stats: tuple[WaitStat, ...] = ()
    instance_info: Optional[InstanceInfo] = None
    tablespaces: tuple[Tablespace, ...] = ()
    active_sessions: tuple[ActiveSession, ...] = ()
    top_sql: tuple[TopSql, ...] = ()
    locks: tuple[LockInfo, ...] = ()
    parameters: tuple[Parameter, ...] = ()
    alert_log_entries: tuple[AlertLogEntry, ...] = ()
    missing_sections: frozenset[str] = frozenset()

    @property
    def is_partial(self) -> bool:
        return bool(self.missing_sections)

    def has(self, section: str) -> bool:
        return section not in self.missing_sections

    @property
    def instance_name(self) -> Optional[str]:
        return self.instance_info.instance_name if self.instance_info else None
