"""
仪表盘 WebSocket 实时推送模块 (Dashboard WebSocket Real-time Push Module)

每次成功采集后向所有已连接客户端推送 metricsUpdate 事件；客户端发送
requestUpdate 时立即向该客户端单独推送最近一次结果。
WebSocket端点：/ws/dashboard

Message format:
  服务端 → 客户端: {"event": "metricsUpdate", "data": {...}}
                   {"event": "error", "data": {"message": "..."}}
  客户端 → 服务端: "requestUpdate" 或 {"event": "requestUpdate"}
"""
import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dbdash.services.monitoring import MonitoringEngine

logger = logging.getLogger(__name__)

router = APIRouter()

REQUEST_UPDATE = "requestUpdate"


def _client_event(raw: str) -> str:
    """解析客户端消息，返回事件名。"""
    try:
        message = json.loads(raw)
    except ValueError:
        return raw.strip()
    if isinstance(message, dict):
        return str(message.get("event", ""))
    return str(message)


def _queue_latest(queue: asyncio.Queue, engine: MonitoringEngine) -> None:
    """最近结果放入该客户端队列，由 pump 统一发送。"""
    message = engine.latest_message()
    if message is None:
        message = {"event": "error", "data": {"message": "Failed to fetch metrics"}}
    engine.broadcaster.offer(queue, message)


@router.websocket("/ws/dashboard")
async def dashboard_ws(websocket: WebSocket):
    """仪表盘 WebSocket 实时推送端点。"""
    engine: MonitoringEngine = websocket.app.state.engine
    await websocket.accept()
    queue = engine.broadcaster.subscribe()
    logger.info("仪表盘 WebSocket 客户端已连接 (subscribers=%d)", engine.broadcaster.subscriber_count)

    async def pump():
        while True:
            message = await queue.get()
            await websocket.send_json(message)

    writer = asyncio.create_task(pump())
    try:
        if engine.latest is not None:
            _queue_latest(queue, engine)
        while True:
            raw = await websocket.receive_text()
            if _client_event(raw) == REQUEST_UPDATE:
                _queue_latest(queue, engine)
    except WebSocketDisconnect:
        pass
    except RuntimeError as e:
        # 连接已关闭后继续收发
        logger.debug(f"Dashboard WebSocket closed: {e}")
    finally:
        writer.cancel()
        try:
            await writer
        except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            pass
        engine.broadcaster.unsubscribe(queue)
        logger.info("仪表盘 WebSocket 客户端已断开")
