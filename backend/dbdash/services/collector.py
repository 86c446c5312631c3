"""
指标采集模块 (Metrics Collection Module)

并发执行所有分区查询并在全部完成（或失败）后组装快照。
单个分区失败时记录日志，以空值替代并写入 missing_sections，不影响其他分区；
全部分区失败时视为数据库不可达，抛出 SourceUnavailable。

Runs every section query concurrently and combines them once all complete or fail.
A failed section is replaced with an empty default and listed in missing_sections.
"""
import asyncio
import logging
from datetime import datetime

from dbdash.core.exceptions import MonitorError, SourceUnavailable
from dbdash.schemas.snapshot import MetricSnapshot, SessionInfo
from dbdash.services.source import MetricsSource

logger = logging.getLogger(__name__)


class MetricsCollector:
    """快照采集器。"""

    def __init__(self, source: MetricsSource):
        self.source = source

    def _fetchers(self):
        s = self.source
        # 分区名 → (查询协程函数, 失败时的默认值)
        return {
            "system_stats": (s.get_system_stats, ()),
            "session_info": (s.get_session_info, SessionInfo()),
            "wait_stats": (s.get_wait_events, ()),
            "instance_info": (s.get_instance_info, None),
            "tablespaces": (s.get_tablespace_usage, ()),
            "active_sessions": (s.get_active_sessions, ()),
            "top_sql": (s.get_top_sql, ()),
            "locks": (s.get_lock_information, ()),
            "parameters": (s.get_database_parameters, ()),
            "alert_log": (s.get_alert_log, ()),
        }

    async def collect(self, at: datetime) -> MetricSnapshot:
        """
        采集一个快照 (Collect one snapshot)

        Args:
            at: 周期开始时间，作为快照时间戳
        Raises:
            SourceUnavailable: 所有分区均失败
        """
        fetchers = self._fetchers()
        results = await asyncio.gather(
            *(fetch() for fetch, _ in fetchers.values()),
            return_exceptions=True,
        )

        sections = {}
        missing = set()
        errors = []
        for (name, (_, default)), result in zip(fetchers.items(), results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                missing.add(name)
                message = result.message if isinstance(result, MonitorError) else str(result)
                errors.append(f"{name}: {message}")
                logger.warning("Metric section %s unavailable at %s: %s", name, at.isoformat(), message)
                sections[name] = default
            else:
                sections[name] = result

        if len(missing) == len(fetchers):
            raise SourceUnavailable("All metric queries failed", "; ".join(errors))

        return MetricSnapshot(
            timestamp=at,
            system_stats=tuple(sections["system_stats"]),
            session_info=sections["session_info"] or SessionInfo(),
            wait_stats=tuple(sections["wait_stats"]),
            instance_info=sections["instance_info"],
            tablespaces=tuple(sections["tablespaces"]),
            active_sessions=tuple(sections["active_sessions"]),
            top_sql=tuple(sections["top_sql"]),
            locks=tuple(sections["locks"]),
            parameters=tuple(sections["parameters"]),
            alert_log_entries=tuple(sections["alert_log"]),
            missing_sections=frozenset(missing),
        )
