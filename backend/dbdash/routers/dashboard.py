"""
仪表盘路由模块 (Dashboard Router)

提供最近一次成功采集的汇总结果、按需刷新、历史趋势序列、健康检查结果和调度器状态。
API端点：
  GET  /api/dashboard/metrics
  POST /api/dashboard/refresh
  GET  /api/dashboard/history/{metric_kind}/{metric_name}
  GET  /api/dashboard/health
  GET  /api/dashboard/scheduler
"""
from fastapi import APIRouter, Depends, Query

from dbdash.core.deps import get_engine, get_scheduler
from dbdash.core.exceptions import SourceUnavailable
from dbdash.schemas.dashboard import HistoricalSeries
from dbdash.services.monitoring import METRICS_TASK, MonitoringEngine
from dbdash.services.health import count_by_status
from dbdash.tasks.scheduler import Scheduler

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/metrics")
async def get_metrics(engine: MonitoringEngine = Depends(get_engine)):
    """
    最新指标汇总 (Latest combined result)

    返回最近一次成功采集的快照 + 健康检查 + 告警；partial / missing_sections
    标明本次快照缺失的分区。尚未完成任何一次采集时返回 503。
    """
    latest = engine.get_all_metrics()
    if latest is None:
        raise SourceUnavailable("No metrics collected yet")
    return latest.to_payload()


@router.post("/refresh")
async def refresh_metrics(
    engine: MonitoringEngine = Depends(get_engine),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """立即执行一次指标采集任务，返回最新结果。"""
    started = await scheduler.run_now(METRICS_TASK)
    latest = engine.get_all_metrics()
    if latest is None:
        raise SourceUnavailable("Metrics collection failed", "see server logs for the task error")
    return {"refreshed": started, **latest.to_payload()}


@router.get("/history/{metric_kind}/{metric_name}", response_model=HistoricalSeries)
async def get_history(
    metric_kind: str,
    metric_name: str,
    hours: float = Query(24, gt=0, le=24 * 30),
    engine: MonitoringEngine = Depends(get_engine),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """从内存历史缓冲区投影单个指标的时间序列。"""
    points = engine.get_historical_data(metric_kind, metric_name, hours, scheduler.clock.now())
    return HistoricalSeries(metric_kind=metric_kind.upper(), metric_name=metric_name, hours=hours, points=points)


@router.get("/health")
async def get_health(engine: MonitoringEngine = Depends(get_engine)):
    checks = engine.latest_health
    return {
        "checks": [c.model_dump(mode="json") for c in checks],
        "summary": count_by_status(checks),
    }


@router.get("/scheduler")
async def get_scheduler_status(scheduler: Scheduler = Depends(get_scheduler)):
    return {"stopping": scheduler.stopping, "tasks": scheduler.status()}
