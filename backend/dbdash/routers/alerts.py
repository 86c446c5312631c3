"""
告警管理路由模块 (Alert Management Router)

提供持久化告警的分页查询、详情获取和确认操作。确认是告警记录唯一的修改途径。
API端点：GET /api/alerts, GET /api/alerts/{id}, POST /api/alerts/{id}/ack
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from dbdash.core.deps import get_scheduler, get_storage
from dbdash.core.exceptions import NotFoundError
from dbdash.schemas.alert import AlertResponse
from dbdash.services.storage import Storage
from dbdash.tasks.scheduler import Scheduler

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("", response_model=dict)
async def list_alerts(
    severity: Optional[str] = None,
    acknowledged: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    storage: Storage = Depends(get_storage),
):
    """
    告警列表查询接口 (Alert List Query)

    按时间倒序分页，支持按严重级别和确认状态筛选。
    """
    alerts, total = await storage.list_alerts(severity, acknowledged, page, page_size)
    return {
        "items": [AlertResponse.model_validate(a).model_dump(mode="json") for a in alerts],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(alert_id: int, storage: Storage = Depends(get_storage)):
    alert = await storage.get_alert(alert_id)
    if alert is None:
        raise NotFoundError("Alert not found", f"alert_id={alert_id}")
    return alert


@router.post("/{alert_id}/ack", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: int,
    storage: Storage = Depends(get_storage),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """告警确认操作接口：标记为已确认并记录确认时间；重复确认保持首次时间。"""
    alert = await storage.acknowledge_alert(alert_id, scheduler.clock.now())
    if alert is None:
        raise NotFoundError("Alert not found", f"alert_id={alert_id}")
    return alert
