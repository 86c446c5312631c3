"""
仪表盘后端应用入口模块 (Dashboard Backend Application Entry Module)

在进程启动时显式构造并装配所有组件（指标源、命令执行器、存储、通知器、
监控引擎、调度器），挂载到 app.state 后交给路由使用，不依赖任何全局单例。
配置校验失败（ConfigInvalid）是唯一的致命错误，create_app 直接抛出。

Explicitly constructs and wires every component at process start and hands them to
the HTTP layer through app.state. ConfigInvalid is the only fatal condition.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dbdash import __version__
from dbdash.core.config import Settings
from dbdash.core.exceptions import PersistenceFailed, register_exception_handlers
from dbdash.routers import alerts, dashboard, dashboard_ws, dba
from dbdash.services.monitoring import MonitoringEngine, build_scheduler
from dbdash.services.notifier import Notifier
from dbdash.services.oracle_source import OracleCommandExecutor, OracleMetricsSource, OraclePool
from dbdash.services.source import CommandExecutor, MetricsSource
from dbdash.services.storage import Storage
from dbdash.tasks.scheduler import Clock

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def create_app(
    settings: Optional[Settings] = None,
    *,
    source: Optional[MetricsSource] = None,
    executor: Optional[CommandExecutor] = None,
    storage: Optional[Storage] = None,
    clock: Optional[Clock] = None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    创建 FastAPI 应用 (Create the FastAPI application)

    Args:
        settings: 应用配置，省略时从环境变量读取
        source / executor / storage / clock: 可注入的组件，省略时按配置创建 Oracle / PostgreSQL 实现
        start_scheduler: 是否在启动时运行调度循环，省略时取 settings.enable_scheduler
    Raises:
        ConfigInvalid: 阈值或通知渠道配置非法
    """
    if settings is None:
        from dbdash.core.config import settings as env_settings
        settings = env_settings
    thresholds = settings.validate_startup()

    if source is None or executor is None:
        pool = OraclePool(settings)
        source = source or OracleMetricsSource(pool)
        executor = executor or OracleCommandExecutor(pool)
    storage = storage or Storage(settings.database_url)
    if start_scheduler is None:
        start_scheduler = settings.enable_scheduler

    engine = MonitoringEngine(
        source,
        storage,
        Notifier(settings),
        thresholds,
        history_size=settings.metrics_history_size,
        suppression_seconds=settings.alert_suppression_seconds,
        temp_dir=settings.temp_dir,
    )
    scheduler = build_scheduler(engine, settings, clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 幂等建表；存储不可用不阻止启动，仪表盘仍可展示内存中的数据
        try:
            await storage.init_schema()
        except PersistenceFailed as e:
            logger.error(f"Storage schema initialization failed: {e.message} ({e.detail})")

        if start_scheduler:
            scheduler.start()
        logger.info(f"{settings.app_name} started (scheduler={'on' if start_scheduler else 'off'})")

        yield

        # 先停止调度，等待执行中的任务结束，再释放连接
        await scheduler.stop_all()
        await source.close()
        await executor.close()
        await storage.dispose()
        logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Database monitoring dashboard | 数据库监控仪表盘",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.scheduler = scheduler
    app.state.storage = storage
    app.state.executor = executor
    app.state.source = source

    register_exception_handlers(app)

    is_production = settings.environment.lower() == "production"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if is_production else ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(dashboard.router)  # 仪表盘数据 (Dashboard data)
    app.include_router(dashboard_ws.router)  # 仪表盘 WebSocket (Dashboard WebSocket)
    app.include_router(alerts.router)  # 告警管理 (Alert management)
    app.include_router(dba.router)  # 管理操作 (DBA actions)

    @app.get("/health")
    async def health():
        """健康检查接口：存储连通性 + 调度器状态。"""
        checks = {
            "api": "ok",
            "storage": "ok" if await storage.ping() else "error",
            "scheduler": "stopping" if scheduler.stopping else "ok",
        }
        status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
        return {
            "status": status,
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def run() -> None:
    """命令行入口。"""
    from dbdash.core.config import settings

    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    uvicorn.run("dbdash.main:create_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
