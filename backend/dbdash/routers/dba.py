"""
数据库管理操作路由模块 (DBA Actions Router)

运维人员手动触发的管理命令。告警不会自动触发这些操作，只在仪表盘中展示。
API端点：
  POST /api/dba/sessions/kill   终止会话
  POST /api/dba/{action}        flush-shared-pool / flush-buffer-cache / switch-logfile / checkpoint
"""
import logging

from fastapi import APIRouter, Depends

from dbdash.core.deps import get_executor
from dbdash.core.exceptions import NotFoundError
from dbdash.schemas.dashboard import CommandResponse, KillSessionRequest
from dbdash.services.source import ADMIN_ACTIONS, CommandExecutor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dba", tags=["dba"])


@router.post("/sessions/kill", response_model=CommandResponse)
async def kill_session(body: KillSessionRequest, executor: CommandExecutor = Depends(get_executor)):
    """终止指定会话；CommandFailed 由全局异常处理器转换为 502。"""
    await executor.kill_session(body.sid, body.serial)
    logger.info(f"Session {body.sid},{body.serial} killed")
    return CommandResponse(success=True, action="kill-session", message=f"Session {body.sid},{body.serial} killed")


@router.post("/{action}", response_model=CommandResponse)
async def run_admin_action(action: str, executor: CommandExecutor = Depends(get_executor)):
    method = ADMIN_ACTIONS.get(action)
    if method is None:
        raise NotFoundError("Unknown admin action", action)
    await getattr(executor, method)()
    logger.info(f"Admin action {action} executed")
    return CommandResponse(success=True, action=action, message=f"{action} executed successfully")
