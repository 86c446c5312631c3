"""
告警落地服务 (Alert Sink Service)

对告警候选做去重，持久化新告警并转发给通知器。
去重基于内存中的 identity_key → 最近发出时间映射：同一批次内的重复项总是被丢弃，
跨批次在 suppression_seconds 窗口内不再重复持久化。持久化失败只记录日志，
不影响同批次其余告警；失败的告警在窗口内按 retry_seconds 间隔重试写入，
但不会再次通知。

Deduplicates alert candidates, persists new ones and forwards them to the notifier.
A persistence failure is logged and never stops the rest of the batch; the alert is
retried for storage on later batches within its window without being re-notified.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable

from dbdash.core.exceptions import PersistenceFailed
from dbdash.schemas.alert import AlertCandidate
from dbdash.services.notifier import Notifier
from dbdash.services.storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_SUPPRESSION_SECONDS = 3600
DEFAULT_RETRY_SECONDS = 60


class AlertSink:
    """告警去重、持久化与通知。"""

    def __init__(
        self,
        storage: Storage,
        notifier: Notifier,
        suppression_seconds: int = DEFAULT_SUPPRESSION_SECONDS,
        retry_seconds: int = DEFAULT_RETRY_SECONDS,
    ):
        self.storage = storage
        self.notifier = notifier
        self.suppression = timedelta(seconds=suppression_seconds)
        self.retry = timedelta(seconds=retry_seconds)
        self._last_raised: dict[str, datetime] = {}
        # 已通知但尚未写入存储的告警：identity_key → (候选, 首次发出时间, 下次重试时间)
        self._unpersisted: dict[str, tuple[AlertCandidate, datetime, datetime]] = {}

    def is_suppressed(self, key: str, now: datetime) -> bool:
        last = self._last_raised.get(key)
        return last is not None and now - last < self.suppression

    @property
    def pending_keys(self) -> list[str]:
        return list(self._unpersisted)

    def _prune(self, now: datetime) -> None:
        # 清理过期的去重记录，防止映射无限增长
        expired = [k for k, t in self._last_raised.items() if now - t >= self.suppression]
        for key in expired:
            del self._last_raised[key]
            self._unpersisted.pop(key, None)

    async def _persist(self, candidate: AlertCandidate, raised_at: datetime, now: datetime) -> bool:
        key = candidate.identity_key
        try:
            await self.storage.save_alert(candidate, raised_at)
        except PersistenceFailed as e:
            logger.error(f"Failed to persist alert {key}: {e.message} ({e.detail})")
            self._unpersisted[key] = (candidate, raised_at, now + self.retry)
            return False
        self._unpersisted.pop(key, None)
        return True

    async def _retry_unpersisted(self, now: datetime) -> None:
        for key, (candidate, raised_at, retry_at) in list(self._unpersisted.items()):
            if now < retry_at:
                continue
            if await self._persist(candidate, raised_at, now):
                logger.info(f"Alert {key} persisted after storage recovered")

    async def raise_alerts(self, candidates: Iterable[AlertCandidate], now: datetime) -> list[AlertCandidate]:
        """
        发出一批告警候选，返回实际发出（未被抑制）的告警。

        Args:
            candidates: 告警候选
            now: 当前周期时间
        """
        self._prune(now)
        await self._retry_unpersisted(now)
        raised: list[AlertCandidate] = []
        seen: set[str] = set()

        for candidate in candidates:
            key = candidate.identity_key
            if key in seen or self.is_suppressed(key, now):
                logger.debug("Alert suppressed by deduplication: %s", key)
                continue
            seen.add(key)

            await self._persist(candidate, now, now)
            self._last_raised[key] = now
            raised.append(candidate)
            await self.notifier.notify(candidate)

        return raised
