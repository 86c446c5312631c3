"""
指标源与命令执行器契约 (Metrics Source and Command Executor Contracts)

MetricsSource 执行只读查询并返回结构化记录；CommandExecutor 执行管理命令。
每个方法都可能独立失败（SourceUnavailable / QueryFailed / CommandFailed）。
数据库返回的行（字段大小写不一、字段可能缺失）在此边界由 map_* 函数映射为显式记录类型。

MetricsSource runs read-only queries and returns typed records; CommandExecutor runs
administrative statements. Raw rows are mapped into explicit record types here.
"""
import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from dbdash.schemas.snapshot import (
    ActiveSession,
    AlertLogEntry,
    InstanceInfo,
    LockInfo,
    Parameter,
    SessionInfo,
    SystemStat,
    Tablespace,
    TopSql,
    WaitStat,
)

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


class MetricsSource(abc.ABC):
    """只读指标源。"""

    @abc.abstractmethod
    async def get_system_stats(self) -> list[SystemStat]: ...

    @abc.abstractmethod
    async def get_session_info(self) -> SessionInfo: ...

    @abc.abstractmethod
    async def get_wait_events(self) -> list[WaitStat]: ...

    @abc.abstractmethod
    async def get_instance_info(self) -> Optional[InstanceInfo]: ...

    @abc.abstractmethod
    async def get_tablespace_usage(self) -> list[Tablespace]: ...

    @abc.abstractmethod
    async def get_active_sessions(self) -> list[ActiveSession]: ...

    @abc.abstractmethod
    async def get_top_sql(self) -> list[TopSql]: ...

    @abc.abstractmethod
    async def get_lock_information(self) -> list[LockInfo]: ...

    @abc.abstractmethod
    async def get_database_parameters(self) -> list[Parameter]: ...

    @abc.abstractmethod
    async def get_alert_log(self) -> list[AlertLogEntry]: ...

    @abc.abstractmethod
    async def get_last_backup_time(self) -> Optional[datetime]: ...

    async def get_performance_metrics(self) -> dict:
        """系统统计、会话、等待、实例信息的组合查询；任一子查询失败则整体失败。"""
        system_stats, session_info, wait_stats, instance_info = await asyncio.gather(
            self.get_system_stats(),
            self.get_session_info(),
            self.get_wait_events(),
            self.get_instance_info(),
        )
        return {
            "system_stats": system_stats,
            "session_info": session_info,
            "wait_stats": wait_stats,
            "instance_info": instance_info,
        }

    async def close(self) -> None:
        pass


class CommandExecutor(abc.ABC):
    """管理命令执行器。"""

    @abc.abstractmethod
    async def run_statement(self, sql: str) -> None: ...

    async def kill_session(self, sid: int, serial: int) -> None:
        sid, serial = int(sid), int(serial)
        if sid < 0 or serial < 0:
            raise ValueError("sid and serial must be non-negative")
        await self.run_statement(f"ALTER SYSTEM KILL SESSION '{sid},{serial}' IMMEDIATE")

    async def flush_shared_pool(self) -> None:
        await self.run_statement("ALTER SYSTEM FLUSH SHARED_POOL")

    async def flush_buffer_cache(self) -> None:
        await self.run_statement("ALTER SYSTEM FLUSH BUFFER_CACHE")

    async def switch_logfile(self) -> None:
        await self.run_statement("ALTER SYSTEM SWITCH LOGFILE")

    async def checkpoint(self) -> None:
        await self.run_statement("ALTER SYSTEM CHECKPOINT")

    async def close(self) -> None:
        pass


# 允许通过 HTTP 触发的固定管理操作 (fixed admin actions exposed over HTTP)
ADMIN_ACTIONS = {
    "flush-shared-pool": "flush_shared_pool",
    "flush-buffer-cache": "flush_buffer_cache",
    "switch-logfile": "switch_logfile",
    "checkpoint": "checkpoint",
}


# ---------------------------------------------------------------------------
# 行映射 (Row mapping)
# ---------------------------------------------------------------------------

def _normalize(row: Row) -> dict[str, Any]:
    return {str(k).upper(): v for k, v in row.items()}


def _get(row: dict[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        value = row.get(name)
        if value is not None:
            return value
    return default


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value)) if value is not None else default
    except (TypeError, ValueError):
        return default


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return _str(value).strip().upper() in ("YES", "TRUE", "Y", "1")


def parse_db_time(value: Any) -> Optional[datetime]:
    """解析数据库时间，无时区信息的时间视为 UTC。"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            try:
                dt = datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
            except ValueError:
                logger.debug("Unparseable database time: %r", value)
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def map_system_stat(row: Row) -> SystemStat:
    r = _normalize(row)
    return SystemStat(
        name=_str(_get(r, "METRIC_NAME", "STAT_NAME", "NAME")),
        value=_float(_get(r, "VALUE")),
        unit=_str(_get(r, "METRIC_UNIT", "UNIT")),
    )


def map_session_info(row: Optional[Row]) -> SessionInfo:
    r = _normalize(row or {})
    return SessionInfo(
        total=_int(_get(r, "TOTAL_SESSIONS", "TOTAL")),
        active=_int(_get(r, "ACTIVE_SESSIONS", "ACTIVE")),
        background=_int(_get(r, "BACKGROUND_SESSIONS", "BACKGROUND")),
        user_sessions=_int(_get(r, "USER_SESSIONS")),
    )


def map_wait_stat(row: Row) -> WaitStat:
    r = _normalize(row)
    return WaitStat(
        wait_class=_str(_get(r, "WAIT_CLASS", "EVENT")),
        total_waits=_int(_get(r, "TOTAL_WAITS")),
        time_waited_seconds=_float(_get(r, "TIME_WAITED_SECONDS")),
        avg_wait_seconds=_float(_get(r, "AVERAGE_WAIT_SECONDS", "AVG_WAIT_SECONDS")),
    )


def map_instance_info(row: Optional[Row]) -> Optional[InstanceInfo]:
    if not row:
        return None
    r = _normalize(row)
    return InstanceInfo(
        instance_name=_str(_get(r, "INSTANCE_NAME")),
        host_name=_str(_get(r, "HOST_NAME")),
        version=_str(_get(r, "VERSION")),
        status=_str(_get(r, "STATUS")),
        database_status=_str(_get(r, "DATABASE_STATUS")),
        startup_time=parse_db_time(_get(r, "STARTUP_TIME")),
    )


def map_tablespace(row: Row) -> Tablespace:
    r = _normalize(row)
    return Tablespace(
        name=_str(_get(r, "TABLESPACE_NAME", "NAME")),
        total_mb=_float(_get(r, "TOTAL_MB")),
        used_mb=_float(_get(r, "USED_MB")),
        free_mb=_float(_get(r, "FREE_MB")),
        used_pct=_float(_get(r, "USED_PCT")),
        auto_extend=_flag(_get(r, "AUTOEXTENSIBLE", "AUTO_EXTEND")),
        status=_str(_get(r, "STATUS")),
    )


def map_active_session(row: Row) -> ActiveSession:
    r = _normalize(row)
    blocking = _get(r, "BLOCKING_SESSION")
    return ActiveSession(
        sid=_int(_get(r, "SID")),
        serial=_int(_get(r, "SERIAL#", "SERIAL")),
        username=_str(_get(r, "USERNAME")),
        status=_str(_get(r, "STATUS")),
        program=_str(_get(r, "PROGRAM")),
        machine=_str(_get(r, "MACHINE")),
        sql_id=_str(_get(r, "SQL_ID")),
        event=_str(_get(r, "EVENT")),
        wait_class=_str(_get(r, "WAIT_CLASS")),
        seconds_in_wait=_float(_get(r, "SECONDS_IN_WAIT")),
        last_call_seconds=_float(_get(r, "LAST_CALL_SECONDS", "LAST_CALL_ET")),
        blocking_session=_int(blocking) if blocking is not None else None,
        sql_text=_str(_get(r, "SQL_TEXT")),
    )


def map_top_sql(row: Row) -> TopSql:
    r = _normalize(row)
    return TopSql(
        sql_id=_str(_get(r, "SQL_ID")),
        text=_str(_get(r, "SQL_TEXT")),
        executions=_int(_get(r, "EXECUTIONS")),
        elapsed_seconds=_float(_get(r, "ELAPSED_TIME_SECONDS")),
        cpu_seconds=_float(_get(r, "CPU_TIME_SECONDS")),
        buffer_gets=_int(_get(r, "BUFFER_GETS")),
        disk_reads=_int(_get(r, "DISK_READS")),
        rows_processed=_int(_get(r, "ROWS_PROCESSED")),
    )


def map_lock(row: Row) -> LockInfo:
    r = _normalize(row)
    return LockInfo(
        sid=_int(_get(r, "SID", "SESSION_ID")),
        serial=_int(_get(r, "SERIAL#", "SERIAL")),
        username=_str(_get(r, "USERNAME", "ORACLE_USERNAME")),
        owner=_str(_get(r, "OWNER")),
        object_name=_str(_get(r, "OBJECT_NAME")),
        object_type=_str(_get(r, "OBJECT_TYPE")),
        locked_mode=_int(_get(r, "LOCKED_MODE")),
        lock_mode_desc=_str(_get(r, "LOCK_MODE_DESC")),
    )


def map_parameter(row: Row) -> Parameter:
    r = _normalize(row)
    return Parameter(
        name=_str(_get(r, "NAME")),
        value=_str(_get(r, "DISPLAY_VALUE", "VALUE")),
        is_default=_flag(_get(r, "ISDEFAULT", "IS_DEFAULT", default="TRUE")),
        description=_str(_get(r, "DESCRIPTION")),
    )


def map_alert_log_entry(row: Row) -> AlertLogEntry:
    r = _normalize(row)
    return AlertLogEntry(
        text=_str(_get(r, "MESSAGE_TEXT", "TEXT")).strip(),
        time=parse_db_time(_get(r, "MESSAGE_TIME", "ORIGINATING_TIMESTAMP")),
        level=_int(_get(r, "MESSAGE_LEVEL", "LEVEL")),
        message_type=_int(_get(r, "MESSAGE_TYPE")),
    )
