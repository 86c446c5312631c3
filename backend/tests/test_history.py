"""指标历史缓冲区测试。"""
from datetime import timedelta

import pytest

from dbdash.schemas.snapshot import SessionInfo, SystemStat, Tablespace, WaitStat
from dbdash.services.history import MetricsHistory

from tests.conftest import T0, make_snapshot


def _at(minutes: int):
    return T0 + timedelta(minutes=minutes)


class TestMetricsHistory:
    def test_invalid_size(self):
        with pytest.raises(ValueError):
            MetricsHistory(0)

    def test_fifo_eviction_keeps_most_recent(self):
        history = MetricsHistory(max_size=3)
        for i in range(5):
            history.append(make_snapshot(at=_at(i)))
            assert len(history) <= 3
        assert [s.timestamp for s in history.query()] == [_at(2), _at(3), _at(4)]
        assert history.latest().timestamp == _at(4)

    def test_latest_empty(self):
        assert MetricsHistory().latest() is None

    def test_query_bounds_inclusive(self):
        history = MetricsHistory()
        for i in range(6):
            history.append(make_snapshot(at=_at(i)))
        window = history.query(_at(1), _at(3))
        assert [s.timestamp for s in window] == [_at(1), _at(2), _at(3)]
        # 可重复迭代
        assert len(list(window)) == 3
        assert [s.timestamp for s in history.query(start=_at(4))] == [_at(4), _at(5)]
        assert [s.timestamp for s in history.query(end=_at(0))] == [_at(0)]

    def test_query_is_isolated_from_later_appends(self):
        history = MetricsHistory()
        history.append(make_snapshot(at=_at(0)))
        window = history.query()
        history.append(make_snapshot(at=_at(1)))
        assert len(list(window)) == 1


class TestSeriesFor:
    def test_tablespace_series_skips_absent(self):
        history = MetricsHistory()
        history.append(make_snapshot(at=_at(0), tablespaces=(Tablespace(name="USERS", used_pct=70),)))
        history.append(make_snapshot(at=_at(1), tablespaces=(Tablespace(name="SYSTEM", used_pct=40),)))
        history.append(make_snapshot(at=_at(2), tablespaces=(Tablespace(name="USERS", used_pct=72.5),)))
        points = history.series_for("TABLESPACE", "USERS", 1, _at(2))
        assert [(p.timestamp, p.value) for p in points] == [(_at(0), 70), (_at(2), 72.5)]

    def test_window_hours(self):
        history = MetricsHistory()
        history.append(make_snapshot(at=T0 - timedelta(hours=3), system_stats=(SystemStat(name="redo size", value=1),)))
        history.append(make_snapshot(at=T0, system_stats=(SystemStat(name="redo size", value=2),)))
        points = history.series_for("system_stat", "redo size", 2, T0)
        assert [p.value for p in points] == [2]

    def test_wait_class_and_session_series(self):
        history = MetricsHistory()
        history.append(make_snapshot(
            at=_at(0),
            wait_stats=(WaitStat(wait_class="User I/O", time_waited_seconds=12),),
            session_info=SessionInfo(total=100, active=9),
        ))
        history.append(make_snapshot(at=_at(1), missing_sections=frozenset({"session_info"})))
        assert [p.value for p in history.series_for("WAIT_CLASS", "User I/O", 1, _at(1))] == [12]
        assert [p.value for p in history.series_for("SESSION_COUNT", "TOTAL", 1, _at(1))] == [100]
        assert [p.value for p in history.series_for("ACTIVE_SESSIONS", "ACTIVE", 1, _at(1))] == [9]

    def test_unknown_kind(self):
        history = MetricsHistory()
        history.append(make_snapshot())
        assert history.series_for("CPU", "x", 24, T0) == []
