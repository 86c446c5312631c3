"""仪表盘存储服务测试（SQLite in-memory）。"""
from datetime import timedelta

import pytest

from dbdash.core.exceptions import PersistenceFailed
from dbdash.schemas.alert import AlertCandidate, Severity
from dbdash.schemas.dashboard import HealthCheckResult, HealthStatus
from dbdash.services.storage import Storage

from tests.conftest import T0


def _alert(severity: Severity = Severity.WARNING, kind: str = "TABLESPACE_WARNING") -> AlertCandidate:
    return AlertCandidate(kind=kind, severity=severity, subject="USERS", message="Tablespace USERS is 85.0% full")


class TestAlerts:
    async def test_save_and_get(self, storage):
        saved = await storage.save_alert(_alert(), T0)
        alert = await storage.get_alert(saved.id)
        assert alert.alert_type == "TABLESPACE_WARNING"
        assert alert.acknowledged is False
        assert alert.details is None

    async def test_list_filters_and_order(self, storage):
        await storage.save_alert(_alert(), T0)
        await storage.save_alert(_alert(Severity.CRITICAL, "TABLESPACE_CRITICAL"), T0 + timedelta(minutes=1))
        items, total = await storage.list_alerts()
        assert total == 2
        assert items[0].alert_type == "TABLESPACE_CRITICAL"

        items, total = await storage.list_alerts(severity="critical")
        assert total == 1

        items, total = await storage.list_alerts(page=2, page_size=1)
        assert total == 2 and len(items) == 1
        assert items[0].alert_type == "TABLESPACE_WARNING"

    async def test_acknowledge(self, storage):
        saved = await storage.save_alert(_alert(), T0)
        acked = await storage.acknowledge_alert(saved.id, T0 + timedelta(minutes=5))
        assert acked.acknowledged is True
        assert acked.acknowledged_at is not None

        items, total = await storage.list_alerts(acknowledged=False)
        assert total == 0

    async def test_acknowledge_missing(self, storage):
        assert await storage.acknowledge_alert(9999, T0) is None


class TestRetention:
    async def test_purge_keeps_critical_alerts(self, storage):
        old = T0 - timedelta(days=91)
        await storage.save_alert(_alert(), old)
        await storage.save_alert(_alert(Severity.CRITICAL, "NO_BACKUPS"), old)
        await storage.save_alert(_alert(), T0 - timedelta(days=10))
        await storage.save_health_log([], old)
        await storage.save_health_log([], T0)

        stats = await storage.purge_expired(T0)

        assert stats["alerts"] == 1
        assert stats["health_logs"] == 1
        items, total = await storage.list_alerts()
        assert total == 2
        assert {a.alert_type for a in items} == {"NO_BACKUPS", "TABLESPACE_WARNING"}


class TestHealthLog:
    async def test_counts(self, storage):
        results = [
            HealthCheckResult(check_name="Tablespace Usage", status=HealthStatus.CRITICAL,
                              observed_value="1", threshold_description="90%", details="1 tablespace(s)"),
            HealthCheckResult(check_name="Alert Log", status=HealthStatus.HEALTHY,
                              observed_value="0", threshold_description="None", details="No critical alerts"),
        ]
        entry = await storage.save_health_log(results, T0)
        assert entry.critical_count == 1
        assert entry.healthy_count == 1
        assert entry.warning_count == 0
        assert entry.details["checks"][0]["check_name"] == "Tablespace Usage"


class TestFailures:
    async def test_unreachable_storage_raises_persistence_failed(self, tmp_path):
        store = Storage(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/db.sqlite")
        with pytest.raises(PersistenceFailed):
            await store.init_schema()
        with pytest.raises(PersistenceFailed):
            await store.save_alert(_alert(), T0)
        assert await store.ping() is False
        await store.dispose()

    async def test_ping(self, storage):
        assert await storage.ping() is True
