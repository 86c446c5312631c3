"""
全局异常处理模块 (Global Exception Handling Module)

定义监控引擎的错误分类和 FastAPI 全局异常处理器，提供统一的错误响应格式。
除 ConfigInvalid 外，所有监控错误都在任务级别被捕获并记录，不会跨任务传播。

Defines the monitoring engine error taxonomy and FastAPI global exception handlers,
providing a unified error response format. Except for ConfigInvalid, every monitoring
error is recovered at the task level and never propagates across tasks.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================
# 监控错误分类 (Monitoring Error Taxonomy)
# ============================================================

class MonitorError(Exception):
    """监控引擎异常基类 (Base Monitoring Exception)"""
    status_code: int = 500
    error: str = "monitor_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class SourceUnavailable(MonitorError):
    """被监控数据库不可达 (Monitored database unreachable)"""
    status_code = 503
    error = "source_unavailable"


class QueryFailed(MonitorError):
    """单个指标查询失败 (One metric query errored)"""
    status_code = 502
    error = "query_failed"


class CommandFailed(MonitorError):
    """管理命令执行失败 (Administrative command errored)"""
    status_code = 502
    error = "command_failed"


class PersistenceFailed(MonitorError):
    """持久化存储写入失败 (Write to durable storage errored)"""
    error = "persistence_failed"


class ConfigInvalid(MonitorError):
    """启动配置非法，进程不得启动 (Invalid startup configuration, fatal)"""
    error = "config_invalid"


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400
    error: str = "business_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class NotFoundError(BusinessError):
    """资源不存在 (Resource Not Found)"""
    status_code = 404
    error = "not_found"


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def _error_response(status_code: int, error: str, message: str, detail: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "detail": detail,
            "status_code": status_code,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError / MonitorError 子类 → 对应 HTTP 状态码 + 结构化响应
    2. HTTPException → 保持原样，包装为统一格式
    3. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        return _error_response(exc.status_code, exc.error, exc.message, exc.detail)

    @app.exception_handler(MonitorError)
    async def monitor_error_handler(request: Request, exc: MonitorError) -> JSONResponse:
        logger.warning("%s on %s %s: %s", exc.error, request.method, request.url.path, exc.message)
        return _error_response(exc.status_code, exc.error, exc.message, exc.detail)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _error_response(exc.status_code, "http_error", str(exc.detail), None)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # 记录完整 traceback 用于调试 (Log full traceback for debugging)
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return _error_response(
            500,
            "internal_server_error",
            "服务器内部错误，请稍后重试 (Internal server error, please try again later)",
            None,
        )
