"""
指标历史缓冲区 (Metrics History Buffer)

有界、按时间排序的内存快照缓冲区，用于短期趋势查询。
超过容量时从头部淘汰最旧的快照（FIFO）。只有调度器的采集任务会写入。

Bounded, time-ordered in-memory buffer of snapshots for short-term trend queries.
Oldest entries are evicted first once the cap is exceeded.
"""
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from dbdash.schemas.dashboard import SeriesPoint
from dbdash.schemas.snapshot import MetricSnapshot

DEFAULT_MAX_SIZE = 1000


def _tablespace_pct(snapshot: MetricSnapshot, name: str) -> Optional[float]:
    for ts in snapshot.tablespaces:
        if ts.name == name:
            return ts.used_pct
    return None


def _system_stat(snapshot: MetricSnapshot, name: str) -> Optional[float]:
    for stat in snapshot.system_stats:
        if stat.name == name:
            return stat.value
    return None


def _wait_class(snapshot: MetricSnapshot, name: str) -> Optional[float]:
    for ws in snapshot.wait_stats:
        if ws.wait_class == name:
            return ws.time_waited_seconds
    return None


def _session_count(snapshot: MetricSnapshot, name: str) -> Optional[float]:
    if not snapshot.has("session_info"):
        return None
    return float(snapshot.session_info.total)


def _active_sessions(snapshot: MetricSnapshot, name: str) -> Optional[float]:
    if not snapshot.has("session_info"):
        return None
    return float(snapshot.session_info.active)


# 指标类型 → 取值函数 (metric kind -> extractor)
EXTRACTORS: dict[str, Callable[[MetricSnapshot, str], Optional[float]]] = {
    "TABLESPACE": _tablespace_pct,
    "SYSTEM_STAT": _system_stat,
    "WAIT_CLASS": _wait_class,
    "SESSION_COUNT": _session_count,
    "ACTIVE_SESSIONS": _active_sessions,
}


class HistoryWindow:
    """时间窗口内的快照视图，可重复迭代。"""

    def __init__(self, snapshots: tuple[MetricSnapshot, ...], start: Optional[datetime], end: Optional[datetime]):
        self._snapshots = snapshots
        self._start = start
        self._end = end

    def __iter__(self) -> Iterator[MetricSnapshot]:
        for snapshot in self._snapshots:
            if self._start is not None and snapshot.timestamp < self._start:
                continue
            if self._end is not None and snapshot.timestamp > self._end:
                continue
            yield snapshot


class MetricsHistory:
    """有界 FIFO 快照缓冲区。"""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._buffer: deque[MetricSnapshot] = deque(maxlen=max_size)

    def __len__(self) -> int:
        return len(self._buffer)

    def append(self, snapshot: MetricSnapshot) -> None:
        # deque(maxlen) 在追加时自动从头部淘汰
        self._buffer.append(snapshot)

    def latest(self) -> Optional[MetricSnapshot]:
        return self._buffer[-1] if self._buffer else None

    def query(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> HistoryWindow:
        """返回时间戳落在 [start, end] 内的快照（两端均可省略）。"""
        return HistoryWindow(tuple(self._buffer), start, end)

    def series_for(
        self,
        metric_kind: str,
        metric_name: str,
        window_hours: float,
        now: datetime,
    ) -> list[SeriesPoint]:
        """
        从缓冲区投影出单个标量时间序列 (Project one scalar series out of the buffer)

        跳过缺少该字段的快照；未知指标类型返回空序列。
        """
        extractor = EXTRACTORS.get(metric_kind.upper())
        if extractor is None:
            return []
        start = now - timedelta(hours=window_hours)
        points = []
        for snapshot in self.query(start=start):
            value = extractor(snapshot, metric_name)
            if value is not None:
                points.append(SeriesPoint(timestamp=snapshot.timestamp, value=value))
        return points
