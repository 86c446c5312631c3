"""备份计划检查：根据最近一次成功备份时间生成告警候选。"""
from datetime import datetime
from typing import Optional

from dbdash.schemas.alert import AlertCandidate, Severity

BACKUP_MAX_AGE_HOURS = 24


def evaluate_backup(last_backup: Optional[datetime], now: datetime) -> list[AlertCandidate]:
    """无备份 → CRITICAL；超过 24 小时 → WARNING；否则无告警。"""
    if last_backup is None:
        return [AlertCandidate(
            kind="NO_BACKUPS",
            severity=Severity.CRITICAL,
            message="No backups found in backup history",
        )]

    hours_since = (now - last_backup).total_seconds() / 3600
    if hours_since > BACKUP_MAX_AGE_HOURS:
        return [AlertCandidate(
            kind="BACKUP_OVERDUE",
            severity=Severity.WARNING,
            message=f"Backup overdue: last backup was {round(hours_since)} hours ago",
            details={
                "hours_since_backup": round(hours_since, 1),
                "last_backup": last_backup.isoformat(),
            },
        )]
    return []
