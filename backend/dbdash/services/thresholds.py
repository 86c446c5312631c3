"""
阈值评估模块 (Threshold Evaluation Module)

纯函数：将一个指标快照与阈值配置比对，生成告警候选列表。
所有比较均为严格大于；缺失的分区被跳过，不会抛出异常。
同一快照重复评估总是得到相同结果（无副作用）。

Pure function mapping a snapshot plus thresholds to alert candidates. All comparisons
are strict "greater than"; missing sections are skipped rather than raising.
"""
from dbdash.core.config import ThresholdConfig
from dbdash.schemas.alert import AlertCandidate, Severity
from dbdash.schemas.snapshot import MetricSnapshot


def evaluate(snapshot: MetricSnapshot, config: ThresholdConfig) -> list[AlertCandidate]:
    """评估快照，返回告警候选（顺序固定：表空间、会话、等待、锁）。"""
    candidates: list[AlertCandidate] = []
    candidates.extend(_evaluate_tablespaces(snapshot, config))

    if snapshot.has("session_info"):
        candidate = _evaluate_sessions(snapshot, config)
        if candidate:
            candidates.append(candidate)

    if snapshot.has("wait_stats"):
        candidate = _evaluate_wait_time(snapshot, config)
        if candidate:
            candidates.append(candidate)

    if snapshot.has("locks"):
        candidate = _evaluate_locks(snapshot, config)
        if candidate:
            candidates.append(candidate)

    return candidates


def _evaluate_tablespaces(snapshot: MetricSnapshot, config: ThresholdConfig) -> list[AlertCandidate]:
    critical = config.critical("tablespace")
    warning = config.warning("tablespace")
    alerts = []
    for ts in snapshot.tablespaces:
        # 使用快照中预先计算的百分比，不重新推导
        if ts.used_pct > critical:
            kind, severity = "TABLESPACE_CRITICAL", Severity.CRITICAL
        elif ts.used_pct > warning:
            kind, severity = "TABLESPACE_WARNING", Severity.WARNING
        else:
            continue
        alerts.append(AlertCandidate(
            kind=kind,
            severity=severity,
            subject=ts.name,
            message=f"Tablespace {ts.name} is {ts.used_pct:.1f}% full",
            details={
                "tablespace": ts.name,
                "used_pct": ts.used_pct,
                "used_mb": ts.used_mb,
                "total_mb": ts.total_mb,
            },
        ))
    return alerts


def _evaluate_sessions(snapshot: MetricSnapshot, config: ThresholdConfig) -> AlertCandidate | None:
    info = snapshot.session_info
    # 活跃会话超过 critical 阈值时仍只发 WARNING
    if info.active > config.critical("session"):
        return AlertCandidate(
            kind="HIGH_ACTIVE_SESSIONS",
            severity=Severity.WARNING,
            message=f"High active sessions: {info.active}",
            details={"active_sessions": info.active, "total_sessions": info.total},
        )
    return None


def _evaluate_wait_time(snapshot: MetricSnapshot, config: ThresholdConfig) -> AlertCandidate | None:
    total = sum(ws.time_waited_seconds for ws in snapshot.wait_stats)
    if total > config.wait_time_warning_seconds:
        return AlertCandidate(
            kind="HIGH_WAIT_TIME",
            severity=Severity.WARNING,
            message=f"High total wait time: {total:.2f} seconds",
            details={
                "total_wait_time": round(total, 2),
                "wait_events": [ws.model_dump(mode="json") for ws in snapshot.wait_stats[:5]],
            },
        )
    return None


def _evaluate_locks(snapshot: MetricSnapshot, config: ThresholdConfig) -> AlertCandidate | None:
    count = len(snapshot.locks)
    if count > config.critical("lock"):
        return AlertCandidate(
            kind="LOCK_CONTENTION",
            severity=Severity.WARNING,
            message=f"High lock contention: {count} locks detected",
            details={
                "lock_count": count,
                "objects": sorted({f"{lk.owner}.{lk.object_name}" for lk in snapshot.locks}),
            },
        )
    return None
