"""
数据模型包 (Data Models Package)

集中导出仪表盘持久化使用的 SQLAlchemy ORM 模型：指标历史、告警、健康检查日志。
Centrally exports the SQLAlchemy ORM models used for dashboard persistence.
"""
from dbdash.models.metric_history import MetricHistoryRecord
from dbdash.models.alert import DashboardAlert
from dbdash.models.health_log import HealthLog

__all__ = ["MetricHistoryRecord", "DashboardAlert", "HealthLog"]
