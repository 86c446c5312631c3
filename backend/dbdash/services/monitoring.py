"""
监控引擎模块 (Monitoring Engine Module)

显式装配采集器、指标历史、阈值评估、健康检查、告警落地和广播器，
并提供五个周期任务的任务体：
  - collect_metrics: 采集快照 → 追加历史 → 阈值评估 → 告警 → 尽力持久化 → 推送
  - run_health_check: 健康检查 → 写入健康日志 → CRITICAL 结果转为告警
  - poll_alert_log: 最近 5 分钟内的严重告警日志条目转为告警
  - cleanup: 按保留期删除过期数据和临时文件
  - check_backups: 检查最近一次备份时间

Explicitly wires collector, history, threshold evaluation, health checks, alert sink
and broadcaster, and provides the bodies of the five periodic tasks. Pull and push
consumers only ever see the most recent successful combined result.
"""
import hashlib
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from dbdash.core.config import Settings, ThresholdConfig
from dbdash.core.exceptions import PersistenceFailed
from dbdash.schemas.alert import AlertCandidate, Severity
from dbdash.schemas.dashboard import CombinedResult, HealthCheckResult, HealthStatus, SeriesPoint
from dbdash.services import thresholds as threshold_evaluator
from dbdash.services.alert_sink import AlertSink
from dbdash.services.backup import evaluate_backup
from dbdash.services.broadcaster import MetricsBroadcaster
from dbdash.services.collector import MetricsCollector
from dbdash.services.health import HealthAggregator
from dbdash.services.history import MetricsHistory
from dbdash.services.notifier import Notifier
from dbdash.services.source import MetricsSource
from dbdash.services.storage import Storage
from dbdash.tasks.cleanup import cleanup_temp_files
from dbdash.tasks.scheduler import Clock, Scheduler

logger = logging.getLogger(__name__)

ALERT_LOG_WINDOW = timedelta(minutes=5)

# 任务名称 (Task names)
METRICS_TASK = "metrics_collection"
HEALTH_TASK = "health_check"
ALERT_LOG_TASK = "alert_log_polling"
CLEANUP_TASK = "cleanup"
BACKUP_TASK = "backup_check"

METRICS_UPDATE_EVENT = "metricsUpdate"


class MonitoringEngine:
    """监控引擎，持有历史缓冲区、去重映射和最近一次成功的汇总结果。"""

    def __init__(
        self,
        source: MetricsSource,
        storage: Storage,
        notifier: Notifier,
        thresholds: ThresholdConfig,
        history_size: int = 1000,
        suppression_seconds: int = 3600,
        temp_dir: str | Path = "temp",
    ):
        self.source = source
        self.storage = storage
        self.thresholds = thresholds
        self.temp_dir = Path(temp_dir)
        self.history = MetricsHistory(history_size)
        self.collector = MetricsCollector(source)
        self.aggregator = HealthAggregator(thresholds)
        self.sink = AlertSink(storage, notifier, suppression_seconds)
        self.broadcaster = MetricsBroadcaster()
        self.latest: Optional[CombinedResult] = None
        self.latest_health: list[HealthCheckResult] = []

    # ── 周期任务体 (periodic task bodies) ──

    async def collect_metrics(self, now: datetime) -> CombinedResult:
        """
        指标采集任务 (Metrics collection task)

        全部分区失败时 SourceUnavailable 向上抛出，由调度器记录；此时不更新最近结果和历史。
        """
        snapshot = await self.collector.collect(now)
        self.history.append(snapshot)

        candidates = threshold_evaluator.evaluate(snapshot, self.thresholds)
        health = self.aggregator.aggregate(snapshot)
        raised = await self.sink.raise_alerts(candidates, now)

        try:
            written = await self.storage.save_metrics(snapshot)
            logger.debug("Persisted %d metric rows for tick %s", written, now.isoformat())
        except PersistenceFailed as e:
            logger.error(f"Failed to persist metrics for tick {now.isoformat()}: {e.message} ({e.detail})")

        result = CombinedResult(
            snapshot=snapshot,
            health_checks=tuple(health),
            alerts=tuple(candidates),
            timestamp=now,
        )
        self.latest = result
        self.latest_health = health
        if snapshot.is_partial:
            logger.warning(f"Partial snapshot at {now.isoformat()}, missing: {sorted(snapshot.missing_sections)}")
        logger.info(
            f"Metrics collected: {len(candidates)} alert candidate(s), {len(raised)} raised, "
            f"{len(self.history)} snapshot(s) buffered"
        )
        await self.publish_latest()
        return result

    async def run_health_check(self, now: datetime) -> list[HealthCheckResult]:
        """健康检查任务：独立采集一次快照（不写入历史），结果写入健康日志。"""
        snapshot = await self.collector.collect(now)
        results = self.aggregator.aggregate(snapshot)
        self.latest_health = results

        try:
            await self.storage.save_health_log(results, now)
        except PersistenceFailed as e:
            logger.error(f"Failed to persist health log: {e.message} ({e.detail})")

        candidates = [
            AlertCandidate(
                kind="HEALTH_CHECK",
                severity=Severity.CRITICAL,
                subject=r.check_name,
                message=f"{r.check_name}: {r.details}",
                details={"check": r.check_name, "value": r.observed_value, "threshold": r.threshold_description},
            )
            for r in results
            if r.status == HealthStatus.CRITICAL
        ]
        if candidates:
            await self.sink.raise_alerts(candidates, now)
        return results

    async def poll_alert_log(self, now: datetime) -> list[AlertCandidate]:
        """告警日志轮询任务：最近 5 分钟内级别达到阈值的条目转为 CRITICAL 告警。"""
        entries = await self.source.get_alert_log()
        level = self.thresholds.alert_log_critical_level
        cutoff = now - ALERT_LOG_WINDOW

        candidates = []
        for entry in entries:
            if entry.level < level or entry.time is None or entry.time <= cutoff:
                continue
            digest = hashlib.sha1(f"{entry.time.isoformat()}|{entry.text}".encode("utf-8")).hexdigest()[:16]
            candidates.append(AlertCandidate(
                kind="ALERT_LOG",
                severity=Severity.CRITICAL,
                subject=digest,
                message=f"Critical alert log entry: {entry.text}",
                details={"message_text": entry.text, "message_time": entry.time.isoformat(), "level": entry.level},
            ))
        if candidates:
            return await self.sink.raise_alerts(candidates, now)
        return []

    async def cleanup(self, now: datetime) -> dict[str, int]:
        """清理任务：数据保留期清理 + 临时文件清理，两者互不影响。"""
        try:
            stats = await self.storage.purge_expired(now)
        except PersistenceFailed as e:
            logger.error(f"Failed to purge expired rows for tick {now.isoformat()}: {e.message} ({e.detail})")
            stats = {}
        removed = await cleanup_temp_files(self.temp_dir, now)
        stats["temp_files"] = len(removed)
        return stats

    async def check_backups(self, now: datetime) -> list[AlertCandidate]:
        """备份检查任务。"""
        last_backup = await self.source.get_last_backup_time()
        candidates = evaluate_backup(last_backup, now)
        if candidates:
            return await self.sink.raise_alerts(candidates, now)
        logger.info(f"Backup check passed, last backup at {last_backup.isoformat()}")
        return []

    # ── 拉取 / 推送接口 (pull / push interfaces) ──

    def get_all_metrics(self) -> Optional[CombinedResult]:
        """最近一次成功采集的汇总结果；尚无结果时返回 None。"""
        return self.latest

    def get_historical_data(self, metric_kind: str, metric_name: str, hours: float, now: datetime) -> list[SeriesPoint]:
        return self.history.series_for(metric_kind, metric_name, hours, now)

    def latest_message(self) -> Optional[dict]:
        if self.latest is None:
            return None
        return {"event": METRICS_UPDATE_EVENT, "data": self.latest.to_payload()}

    async def publish_latest(self) -> None:
        message = self.latest_message()
        if message is not None:
            await self.broadcaster.publish(message)


def build_scheduler(engine: MonitoringEngine, settings: Settings, clock: Optional[Clock] = None) -> Scheduler:
    """按配置注册五个周期任务；指标采集任务在启动后立即执行一次。"""
    scheduler = Scheduler(clock, resolution=settings.scheduler_resolution)
    scheduler.add_task(METRICS_TASK, settings.metrics_interval, engine.collect_metrics, run_on_start=True)
    scheduler.add_task(HEALTH_TASK, settings.health_check_interval, engine.run_health_check)
    scheduler.add_task(ALERT_LOG_TASK, settings.alert_log_interval, engine.poll_alert_log)
    scheduler.add_task(CLEANUP_TASK, settings.cleanup_interval, engine.cleanup)
    scheduler.add_task(BACKUP_TASK, settings.backup_check_interval, engine.check_backups)
    return scheduler
