"""
仪表盘持久化服务 (Dashboard Persistence Service)

封装指标历史、告警、健康日志三张表的读写和保留策略清理。
所有写入失败统一转换为 PersistenceFailed，由调用方决定是否忽略。

Wraps reads/writes of the metrics-history, alerts and health-log tables plus the
retention cleanup. Every storage failure is re-raised as PersistenceFailed.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional

from sqlalchemy import and_, delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dbdash.core.database import Base, create_session_factory
from dbdash.core.exceptions import PersistenceFailed
from dbdash.models.alert import DashboardAlert
from dbdash.models.health_log import HealthLog
from dbdash.models.metric_history import MetricHistoryRecord
from dbdash.schemas.alert import AlertCandidate, Severity
from dbdash.schemas.dashboard import HealthCheckResult
from dbdash.schemas.snapshot import MetricSnapshot
from dbdash.services.health import count_by_status

logger = logging.getLogger(__name__)

# 保留期配置（天） (Retention settings in days)
RETENTION_DAYS = {
    "metrics_history": 30,   # 指标历史保留30天
    "alerts": 90,            # 告警保留90天（CRITICAL 永久保留）
    "health_logs": 90,       # 健康日志保留90天
}


class Storage:
    """仪表盘存储服务类"""

    def __init__(self, url: str, **engine_kwargs):
        self.engine, self.session_factory = create_session_factory(url, **engine_kwargs)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as db:
                yield db
        except SQLAlchemyError as e:
            raise PersistenceFailed("Storage operation failed", str(e)) from e
        except OSError as e:
            raise PersistenceFailed("Storage unavailable", str(e)) from e

    async def init_schema(self) -> None:
        """幂等建表（已存在则跳过） (Idempotent create-if-absent)"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceFailed("Schema creation failed", str(e)) from e

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Storage ping failed: {e}")
            return False

    async def save_metrics(self, snapshot: MetricSnapshot) -> int:
        """将快照中的标量指标逐行写入历史表，返回写入行数。"""
        instance = snapshot.instance_name
        rows = []
        for stat in snapshot.system_stats:
            rows.append(("SYSTEM_STAT", stat.name, stat.value, stat.unit or "COUNT"))
        for ts in snapshot.tablespaces:
            rows.append(("TABLESPACE", ts.name, ts.used_pct, "PERCENT"))
        if snapshot.has("session_info"):
            rows.append(("SESSION_COUNT", "TOTAL_SESSIONS", float(snapshot.session_info.total), "COUNT"))

        if not rows:
            return 0
        async with self.session() as db:
            db.add_all([
                MetricHistoryRecord(
                    metric_type=metric_type,
                    metric_name=name,
                    metric_value=value,
                    metric_unit=unit,
                    timestamp=snapshot.timestamp,
                    instance_name=instance,
                )
                for metric_type, name, value, unit in rows
            ])
            await db.commit()
        return len(rows)

    async def save_alert(self, candidate: AlertCandidate, at: datetime) -> DashboardAlert:
        async with self.session() as db:
            alert = DashboardAlert(
                alert_type=candidate.kind,
                severity=candidate.severity.value,
                message=candidate.message,
                details=candidate.details or None,
                timestamp=at,
                acknowledged=False,
            )
            db.add(alert)
            await db.commit()
            await db.refresh(alert)
            return alert

    async def save_health_log(self, results: list[HealthCheckResult], at: datetime) -> HealthLog:
        counts = count_by_status(results)
        async with self.session() as db:
            entry = HealthLog(
                timestamp=at,
                critical_count=counts["CRITICAL"],
                warning_count=counts["WARNING"],
                healthy_count=counts["HEALTHY"],
                details={"checks": [r.model_dump(mode="json") for r in results]},
            )
            db.add(entry)
            await db.commit()
            await db.refresh(entry)
            return entry

    async def get_alert(self, alert_id: int) -> Optional[DashboardAlert]:
        async with self.session() as db:
            result = await db.execute(select(DashboardAlert).where(DashboardAlert.id == alert_id))
            return result.scalar_one_or_none()

    async def list_alerts(
        self,
        severity: Optional[str] = None,
        acknowledged: Optional[bool] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[DashboardAlert], int]:
        filters = []
        if severity:
            filters.append(DashboardAlert.severity == severity.upper())
        if acknowledged is not None:
            filters.append(DashboardAlert.acknowledged == acknowledged)

        q = select(DashboardAlert)
        count_q = select(func.count(DashboardAlert.id))
        if filters:
            q = q.where(and_(*filters))
            count_q = count_q.where(and_(*filters))

        async with self.session() as db:
            total = (await db.execute(count_q)).scalar() or 0
            q = q.order_by(DashboardAlert.timestamp.desc()).offset((page - 1) * page_size).limit(page_size)
            alerts = (await db.execute(q)).scalars().all()
        return list(alerts), total

    async def acknowledge_alert(self, alert_id: int, at: datetime) -> Optional[DashboardAlert]:
        """将告警标记为已确认；不存在时返回 None。"""
        async with self.session() as db:
            result = await db.execute(select(DashboardAlert).where(DashboardAlert.id == alert_id))
            alert = result.scalar_one_or_none()
            if alert is None:
                return None
            if not alert.acknowledged:
                alert.acknowledged = True
                alert.acknowledged_at = at
                await db.commit()
                await db.refresh(alert)
            return alert

    async def purge_expired(self, now: datetime) -> dict[str, int]:
        """
        按保留期删除过期数据 (Delete rows older than their retention window)

        Returns:
            dict[str, int]: 各表删除行数
        """
        metrics_cutoff = now - timedelta(days=RETENTION_DAYS["metrics_history"])
        alerts_cutoff = now - timedelta(days=RETENTION_DAYS["alerts"])
        health_cutoff = now - timedelta(days=RETENTION_DAYS["health_logs"])

        stats = {}
        async with self.session() as db:
            result = await db.execute(
                delete(MetricHistoryRecord).where(MetricHistoryRecord.timestamp < metrics_cutoff)
            )
            stats["metrics_history"] = result.rowcount or 0

            # CRITICAL 告警永久保留
            result = await db.execute(
                delete(DashboardAlert).where(and_(
                    DashboardAlert.timestamp < alerts_cutoff,
                    DashboardAlert.severity != Severity.CRITICAL.value,
                ))
            )
            stats["alerts"] = result.rowcount or 0

            result = await db.execute(delete(HealthLog).where(HealthLog.timestamp < health_cutoff))
            stats["health_logs"] = result.rowcount or 0
            await db.commit()

        logger.info(f"Retention cleanup completed. Total records cleaned: {sum(stats.values())}, Details: {stats}")
        return stats
