"""
FastAPI 依赖项模块 (FastAPI Dependencies Module)

从 app.state 取出启动时显式装配的组件，供路由通过 Depends 注入。
不存在任何模块级单例；测试可以通过 create_app 传入替身组件。

Resolves the components wired at startup from app.state for injection into routes.
"""
from fastapi import Request

from dbdash.services.monitoring import MonitoringEngine
from dbdash.services.source import CommandExecutor
from dbdash.services.storage import Storage
from dbdash.tasks.scheduler import Scheduler


def get_engine(request: Request) -> MonitoringEngine:
    return request.app.state.engine


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_executor(request: Request) -> CommandExecutor:
    return request.app.state.executor


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler
