"""
健康检查汇总模块 (Health Aggregation Module)

从最新快照推导三项固定健康检查：表空间使用率、会话健康、告警日志。
每项检查独立计算，互不短路。某项检查内部出错时该项默认返回 HEALTHY，
并在 details 中注明无法执行（fail-open，优先保证仪表盘可用）。

Derives three fixed health checks from a snapshot. Each check is computed
independently; an internal error makes that check fail open to HEALTHY with
a details string noting it could not run.
"""
import logging
from typing import Callable

from dbdash.core.config import ThresholdConfig
from dbdash.schemas.dashboard import HealthCheckResult, HealthStatus
from dbdash.schemas.snapshot import MetricSnapshot

logger = logging.getLogger(__name__)

LONG_RUNNING_SECONDS = 3600  # 会话空闲超过 1 小时视为长时间运行
LONG_RUNNING_CRITICAL_COUNT = 10
TABLESPACE_CRITICAL_PCT = 90  # 健康卡片使用固定阈值，与告警阈值配置无关
TABLESPACE_WARNING_PCT = 80

TABLESPACE_CHECK = "Tablespace Usage"
SESSION_CHECK = "Session Health"
ALERT_LOG_CHECK = "Alert Log"


class HealthAggregator:
    """健康检查汇总器。"""

    def __init__(self, thresholds: ThresholdConfig):
        self.thresholds = thresholds
        self._checks: list[tuple[str, str, Callable[[MetricSnapshot], HealthCheckResult]]] = [
            (TABLESPACE_CHECK, f"{TABLESPACE_CRITICAL_PCT}%", self._check_tablespaces),
            (SESSION_CHECK, str(LONG_RUNNING_CRITICAL_COUNT), self._check_sessions),
            (ALERT_LOG_CHECK, "None", self._check_alert_log),
        ]

    def aggregate(self, snapshot: MetricSnapshot) -> list[HealthCheckResult]:
        results = []
        for name, threshold, check in self._checks:
            try:
                results.append(check(snapshot))
            except Exception as e:
                logger.warning("Health check %s could not run: %s", name, e, exc_info=True)
                results.append(HealthCheckResult(
                    check_name=name,
                    status=HealthStatus.HEALTHY,
                    observed_value="0",
                    threshold_description=threshold,
                    details=f"Unable to check: {e}",
                ))
        return results

    def _check_tablespaces(self, snapshot: MetricSnapshot) -> HealthCheckResult:
        critical = TABLESPACE_CRITICAL_PCT
        warning = TABLESPACE_WARNING_PCT
        threshold = f"{critical:g}%"
        if not snapshot.has("tablespaces"):
            raise LookupError("tablespace usage unavailable")

        over_critical = [ts for ts in snapshot.tablespaces if ts.used_pct > critical]
        over_warning = [ts for ts in snapshot.tablespaces if warning < ts.used_pct <= critical]

        if over_critical:
            status, offenders, limit = HealthStatus.CRITICAL, over_critical, critical
        elif over_warning:
            status, offenders, limit = HealthStatus.WARNING, over_warning, warning
        else:
            return HealthCheckResult(
                check_name=TABLESPACE_CHECK,
                status=HealthStatus.HEALTHY,
                observed_value="OK",
                threshold_description=threshold,
                details="All tablespaces normal",
            )

        names = ", ".join(f"{ts.name} ({ts.used_pct:.1f}%)" for ts in offenders)
        return HealthCheckResult(
            check_name=TABLESPACE_CHECK,
            status=status,
            observed_value=str(len(offenders)),
            threshold_description=threshold,
            details=f"{len(offenders)} tablespace(s) > {limit:g}% full: {names}",
        )

    def _check_sessions(self, snapshot: MetricSnapshot) -> HealthCheckResult:
        if not snapshot.has("active_sessions"):
            raise LookupError("active sessions unavailable")

        long_running = [s for s in snapshot.active_sessions if s.last_call_seconds > LONG_RUNNING_SECONDS]
        count = len(long_running)
        if count > LONG_RUNNING_CRITICAL_COUNT:
            status = HealthStatus.CRITICAL
        elif count > 0:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.HEALTHY

        details = f"{count} session(s) running > 1 hour" if count else "No long-running sessions"
        return HealthCheckResult(
            check_name=SESSION_CHECK,
            status=status,
            observed_value=str(count),
            threshold_description=str(LONG_RUNNING_CRITICAL_COUNT),
            details=details,
        )

    def _check_alert_log(self, snapshot: MetricSnapshot) -> HealthCheckResult:
        if not snapshot.has("alert_log"):
            raise LookupError("alert log unavailable")

        level = self.thresholds.alert_log_critical_level
        critical = [e for e in snapshot.alert_log_entries if e.level >= level]
        # 告警日志没有 WARNING 级别
        if critical:
            return HealthCheckResult(
                check_name=ALERT_LOG_CHECK,
                status=HealthStatus.CRITICAL,
                observed_value=str(len(critical)),
                threshold_description="None",
                details=f"{len(critical)} critical alert(s) detected",
            )
        return HealthCheckResult(
            check_name=ALERT_LOG_CHECK,
            status=HealthStatus.HEALTHY,
            observed_value="0",
            threshold_description="None",
            details="No critical alerts",
        )


def count_by_status(results: list[HealthCheckResult]) -> dict[str, int]:
    counts = {status.value: 0 for status in HealthStatus}
    for result in results:
        counts[result.status.value] += 1
    return counts
