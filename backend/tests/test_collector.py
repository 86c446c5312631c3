"""快照采集与分区失败处理测试。"""
import pytest

from dbdash.core.exceptions import SourceUnavailable
from dbdash.schemas.snapshot import SessionInfo
from dbdash.services.collector import MetricsCollector

from tests.conftest import T0


class TestMetricsCollector:
    async def test_full_snapshot(self, source):
        snapshot = await MetricsCollector(source).collect(T0)
        assert snapshot.timestamp == T0
        assert not snapshot.is_partial
        assert snapshot.instance_name == "ORCL"
        assert [t.name for t in snapshot.tablespaces] == ["SYSTEM", "USERS"]
        assert snapshot.session_info.total == 150
        assert len(snapshot.top_sql) == 1

    async def test_lock_query_failure_keeps_other_sections(self, source):
        source.failing.add("get_lock_information")
        snapshot = await MetricsCollector(source).collect(T0)

        assert snapshot.missing_sections == frozenset({"locks"})
        assert snapshot.locks == ()
        assert not snapshot.has("locks")
        assert len(snapshot.tablespaces) == 2
        assert snapshot.session_info.active == 12
        assert len(snapshot.top_sql) == 1
        assert len(snapshot.parameters) == 1

    async def test_session_failure_uses_default(self, source):
        source.failing.add("get_session_info")
        snapshot = await MetricsCollector(source).collect(T0)
        assert snapshot.session_info == SessionInfo()
        assert "session_info" in snapshot.missing_sections

    async def test_all_sections_failed_raises(self, source):
        source.unreachable = True
        with pytest.raises(SourceUnavailable) as exc:
            await MetricsCollector(source).collect(T0)
        assert "locks" in exc.value.detail

    async def test_queries_run_once_each(self, source):
        await MetricsCollector(source).collect(T0)
        assert source.calls["get_tablespace_usage"] == 1
        assert source.calls["get_alert_log"] == 1
        assert "get_last_backup_time" not in source.calls

    async def test_performance_metrics_combined(self, source):
        metrics = await source.get_performance_metrics()
        assert set(metrics) == {"system_stats", "session_info", "wait_stats", "instance_info"}
