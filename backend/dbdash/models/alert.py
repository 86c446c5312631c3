"""
告警模型 (Alert Model)

记录由阈值评估、健康检查、告警日志轮询和备份检查产生的告警。
仅确认操作会修改记录；仅保留策略清理任务会删除记录（CRITICAL 永久保留）。

Durable record of raised alerts. Only acknowledgement mutates a row; only the
retention cleanup deletes rows, and CRITICAL alerts are retained indefinitely.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dbdash.core.database import Base


class DashboardAlert(Base):
    """告警事件表 (Alert Event Table)"""
    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # 告警类型 (Alert Type)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # WARNING / CRITICAL
    message: Mapped[str] = mapped_column(Text, nullable=False)  # 告警消息 (Alert Message)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)  # 结构化详情 (Structured Details)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)  # 触发时间 (Raised At)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # 是否已确认 (Acknowledged)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)  # 确认时间
