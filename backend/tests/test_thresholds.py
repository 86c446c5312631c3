"""阈值配置与阈值评估测试。"""
import pytest

from dbdash.core.config import Settings, ThresholdConfig, ThresholdPair
from dbdash.core.exceptions import ConfigInvalid
from dbdash.schemas.alert import Severity
from dbdash.schemas.snapshot import LockInfo, SessionInfo, Tablespace, WaitStat
from dbdash.services.thresholds import evaluate

from tests.conftest import make_snapshot


def _ts(name: str, pct: float) -> Tablespace:
    return Tablespace(name=name, total_mb=100, used_mb=pct, free_mb=100 - pct, used_pct=pct)


class TestThresholdConfig:
    def test_defaults(self):
        config = ThresholdConfig()
        assert config["tablespace"] == ThresholdPair(80, 90)
        assert config.critical("session") == 500
        assert config.warning("lock") == 10
        assert config.alert_log_critical_level == 16

    def test_warning_must_be_below_critical(self):
        with pytest.raises(ConfigInvalid) as exc:
            ThresholdConfig({"tablespace": ThresholdPair(90, 90), "cpu": (95, 80)})
        assert "tablespace" in exc.value.detail
        assert "cpu" in exc.value.detail

    def test_override_merges_with_defaults(self):
        config = ThresholdConfig({"tablespace": (70, 85)})
        assert config.critical("tablespace") == 85
        assert config.critical("lock") == 20
        assert config.as_dict()["tablespace"] == {"warning": 70, "critical": 85}

    def test_settings_threshold_config_invalid(self):
        settings = Settings(lock_warning=30, lock_critical=20)
        with pytest.raises(ConfigInvalid):
            settings.threshold_config()

    def test_validate_startup_requires_email_fields(self):
        settings = Settings(email_enabled=True, smtp_host="", smtp_user="", email_recipients="")
        with pytest.raises(ConfigInvalid) as exc:
            settings.validate_startup()
        assert "SMTP_HOST" in exc.value.detail

    def test_validate_startup_ok(self):
        settings = Settings(email_enabled=False, webhook_enabled=False, oracle_password="x")
        assert isinstance(settings.validate_startup(), ThresholdConfig)


class TestTablespaceRules:
    @pytest.mark.parametrize("pct, expected", [
        (95.0, Severity.CRITICAL),
        (90.01, Severity.CRITICAL),
        (90.0, Severity.WARNING),
        (85.0, Severity.WARNING),
        (80.0, None),
        (10.0, None),
    ])
    def test_tablespace_severity_bands(self, thresholds, pct, expected):
        alerts = evaluate(make_snapshot(tablespaces=(_ts("DATA", pct),)), thresholds)
        if expected is None:
            assert alerts == []
        else:
            assert len(alerts) == 1
            assert alerts[0].severity == expected
            assert alerts[0].subject == "DATA"

    def test_critical_tablespace_alert(self, thresholds):
        alerts = evaluate(make_snapshot(tablespaces=(_ts("USERS", 95),)), thresholds)
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.kind == "TABLESPACE_CRITICAL"
        assert alert.identity_key == "TABLESPACE_CRITICAL:USERS"
        assert alert.message == "Tablespace USERS is 95.0% full"
        assert alert.details["used_pct"] == 95

    def test_each_tablespace_evaluated_independently(self, thresholds):
        snapshot = make_snapshot(tablespaces=(_ts("A", 95), _ts("B", 85), _ts("C", 50)))
        alerts = evaluate(snapshot, thresholds)
        assert [(a.subject, a.severity) for a in alerts] == [("A", Severity.CRITICAL), ("B", Severity.WARNING)]


class TestOtherRules:
    def test_active_sessions_above_critical_is_warning(self, thresholds):
        alerts = evaluate(make_snapshot(session_info=SessionInfo(total=800, active=501)), thresholds)
        assert [a.kind for a in alerts] == ["HIGH_ACTIVE_SESSIONS"]
        assert alerts[0].severity == Severity.WARNING

    def test_active_sessions_at_critical_no_alert(self, thresholds):
        assert evaluate(make_snapshot(session_info=SessionInfo(total=800, active=500)), thresholds) == []

    def test_total_wait_time_aggregate(self, thresholds):
        waits = (
            WaitStat(wait_class="User I/O", time_waited_seconds=200),
            WaitStat(wait_class="Commit", time_waited_seconds=100.5),
        )
        alerts = evaluate(make_snapshot(wait_stats=waits), thresholds)
        assert len(alerts) == 1
        assert alerts[0].kind == "HIGH_WAIT_TIME"
        assert alerts[0].details["total_wait_time"] == 300.5

    def test_wait_time_exactly_300_no_alert(self, thresholds):
        waits = (WaitStat(wait_class="User I/O", time_waited_seconds=300),)
        assert evaluate(make_snapshot(wait_stats=waits), thresholds) == []

    def test_lock_contention(self, thresholds):
        locks = tuple(LockInfo(sid=i, owner="APP", object_name="ORDERS") for i in range(21))
        alerts = evaluate(make_snapshot(locks=locks), thresholds)
        assert [a.kind for a in alerts] == ["LOCK_CONTENTION"]
        assert alerts[0].details["objects"] == ["APP.ORDERS"]

    def test_missing_sections_skipped(self, thresholds):
        snapshot = make_snapshot(
            session_info=SessionInfo(active=10_000),
            missing_sections=frozenset({"session_info", "locks", "wait_stats"}),
        )
        assert evaluate(snapshot, thresholds) == []

    def test_empty_snapshot_no_alerts(self, thresholds):
        assert evaluate(make_snapshot(), thresholds) == []

    def test_evaluation_is_pure(self, thresholds):
        snapshot = make_snapshot(
            tablespaces=(_ts("USERS", 95), _ts("TEMP", 82)),
            session_info=SessionInfo(active=600),
        )
        assert evaluate(snapshot, thresholds) == evaluate(snapshot, thresholds)
