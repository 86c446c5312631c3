from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from dbdash.schemas.alert import AlertCandidate
from dbdash.schemas.snapshot import MetricSnapshot


class HealthStatus(str, enum.Enum):
    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class HealthCheckResult(BaseModel):
    """单个健康维度的检查结果，每个周期完整重算。"""
    model_config = ConfigDict(frozen=True)

    check_name: str
    status: HealthStatus
    observed_value: str
    threshold_description: str
    details: str


class CombinedResult(BaseModel):
    """一次成功采集后的汇总结果：快照 + 健康检查 + 当前告警。"""
    model_config = ConfigDict(frozen=True)

    snapshot: MetricSnapshot
    health_checks: tuple[HealthCheckResult, ...]
    alerts: tuple[AlertCandidate, ...]
    timestamp: datetime

    def to_payload(self) -> dict:
        data = self.model_dump(mode="json")
        data["partial"] = self.snapshot.is_partial
        data["missing_sections"] = sorted(self.snapshot.missing_sections)
        data["alerts"] = [
            {**a.model_dump(mode="json"), "identity_key": a.identity_key} for a in self.alerts
        ]
        return data


class SeriesPoint(BaseModel):
    timestamp: datetime
    value: float


class HistoricalSeries(BaseModel):
    metric_kind: str
    metric_name: str
    hours: float
    points: list[SeriesPoint] = Field(default_factory=list)


class KillSessionRequest(BaseModel):
    sid: int = Field(ge=0)
    serial: int = Field(ge=0)


class CommandResponse(BaseModel):
    success: bool
    action: str
    message: str = ""
