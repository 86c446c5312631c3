from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, enum.Enum):
    """告警严重级别。"""
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AlertCandidate(BaseModel):
    """
    待发出的告警（瞬态值）。

    identity_key 由 kind + subject 组成，在去重窗口内用于避免每个周期重复持久化同一告警。
    """
    model_config = ConfigDict(frozen=True)

    kind: str
    severity: Severity
    message: str
    subject: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def identity_key(self) -> str:
        return f"{self.kind}:{self.subject}"

    def summary(self) -> str:
        return f"[{self.severity.value}] {self.kind}: {self.message}"


# ── API ──

class AlertResponse(BaseModel):
    id: int
    alert_type: str
    severity: str
    message: str
    details: dict | None
    timestamp: datetime
    acknowledged: bool
    acknowledged_at: datetime | None

    model_config = {"from_attributes": True}
