"""
健康检查日志模型 (Health Log Model)

每次健康检查任务执行后记录各状态的数量和完整检查结果。
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from dbdash.core.database import Base


class HealthLog(Base):
    """健康检查日志表 (Health Log Table)"""
    __tablename__ = "health_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    critical_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    healthy_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)  # 检查结果列表 (Check results)
