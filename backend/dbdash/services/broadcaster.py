"""
指标广播器 (Metrics Broadcaster)
基于内存队列的发布-订阅，向多个 WebSocket 客户端推送 metricsUpdate 事件。
"""
import asyncio
import logging
from typing import List

logger = logging.getLogger(__name__)

QUEUE_SIZE = 10


class MetricsBroadcaster:
    """
    每个订阅者一个有界队列；队列满时丢弃最旧的消息，慢客户端不会阻塞采集任务。
    """

    def __init__(self):
        self._subscribers: List[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @staticmethod
    def offer(queue: asyncio.Queue, message) -> None:
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            queue.get_nowait()
            queue.put_nowait(message)

    async def publish(self, message):
        for queue in list(self._subscribers):
            self.offer(queue, message)
