"""
指标历史模型 (Metric History Model)

按指标类型/名称逐行存储每次采集的标量指标，为长期趋势和保留策略清理提供数据。
Stores one scalar metric per row for every collection tick.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from dbdash.core.database import Base


class MetricHistoryRecord(Base):
    """指标历史表 (Metric History Table)"""
    __tablename__ = "metrics_history"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    metric_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # SYSTEM_STAT / TABLESPACE / SESSION_COUNT
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)  # 指标名称 (Metric Name)
    metric_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # 指标值 (Metric Value)
    metric_unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # 单位 (Unit)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)  # 采集时间 (Collected At)
    instance_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)  # 实例名 (Instance Name)
