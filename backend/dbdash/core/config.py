"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理仪表盘的所有配置项，支持从 .env 文件和环境变量读取。
提供被监控数据库连接、仪表盘存储、任务周期、告警阈值、通知渠道等配置管理。

Uses Pydantic Settings to manage all dashboard configuration items, supporting reading
from .env files and environment variables. Covers the monitored database connection,
dashboard storage, task periods, alert thresholds and notification channels.
"""
import logging
from types import MappingProxyType
from typing import Mapping, NamedTuple

from pydantic_settings import BaseSettings

from dbdash.core.exceptions import ConfigInvalid

logger = logging.getLogger(__name__)


class ThresholdPair(NamedTuple):
    """一组告警阈值 (One warning/critical threshold pair)"""
    warning: float
    critical: float


# 默认阈值 (Default thresholds)
DEFAULT_THRESHOLDS = {
    "tablespace": ThresholdPair(80, 90),   # 表空间使用率 %
    "session": ThresholdPair(300, 500),    # 会话数
    "cpu": ThresholdPair(70, 90),          # CPU %
    "memory": ThresholdPair(70, 90),       # 内存 %
    "iowait": ThresholdPair(30, 50),       # IO 等待 %
    "lock": ThresholdPair(10, 20),         # 锁数量
}


class ThresholdConfig:
    """
    告警阈值配置 (Alert Threshold Configuration)

    指标类型 → (warning, critical) 的只读映射。构造时立即校验每组阈值
    满足 warning < critical，否则抛出 ConfigInvalid 并列出全部非法项。

    Read-only mapping of metric kind to (warning, critical). Every pair is validated
    eagerly at construction; a violation raises ConfigInvalid naming all offenders.
    """

    def __init__(
        self,
        pairs: Mapping[str, ThresholdPair] | None = None,
        alert_log_critical_level: int = 16,
        wait_time_warning_seconds: float = 300.0,
    ):
        merged = dict(DEFAULT_THRESHOLDS)
        for kind, pair in (pairs or {}).items():
            merged[kind] = ThresholdPair(*pair)

        errors = [
            f"{kind}: warning ({pair.warning}) must be less than critical ({pair.critical})"
            for kind, pair in merged.items()
            if not pair.warning < pair.critical
        ]
        if errors:
            raise ConfigInvalid("Invalid alert thresholds", "; ".join(errors))

        self._pairs = MappingProxyType(merged)
        self.alert_log_critical_level = alert_log_critical_level
        self.wait_time_warning_seconds = wait_time_warning_seconds

    def __getitem__(self, kind: str) -> ThresholdPair:
        return self._pairs[kind]

    def warning(self, kind: str) -> float:
        return self._pairs[kind].warning

    def critical(self, kind: str) -> float:
        return self._pairs[kind].critical

    def as_dict(self) -> dict:
        return {kind: pair._asdict() for kind, pair in self._pairs.items()}


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。
    Field names map to same-named environment variables (case insensitive).
    """

    app_name: str = "Database Dashboard"
    environment: str = "development"  # 运行环境：development/production (Runtime Environment)
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"  # 日志级别 (Log Level)

    # 被监控数据库配置 (Monitored Database Configuration)
    oracle_user: str = "system"
    oracle_password: str = ""
    oracle_dsn: str = "localhost:1521/ORCLCDB"
    oracle_pool_min: int = 2
    oracle_pool_max: int = 10
    oracle_pool_increment: int = 1

    # 仪表盘存储配置 (Dashboard Storage Configuration)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "dbdash"
    postgres_user: str = "dbdash"
    postgres_password: str = "dbdash_dev_password"
    storage_url: str = ""  # 非空时覆盖 PostgreSQL 配置 (Overrides the PostgreSQL fields when set)

    # 任务周期（秒） (Task periods in seconds)
    enable_scheduler: bool = True
    scheduler_resolution: float = 1.0
    metrics_interval: int = 30
    health_check_interval: int = 300
    alert_log_interval: int = 60
    cleanup_interval: int = 86400
    backup_check_interval: int = 3600
    metrics_history_size: int = 1000
    alert_suppression_seconds: int = 3600  # 相同告警不重复持久化的时间窗口 (Dedup window)
    temp_dir: str = "temp"

    # 告警阈值 (Alert Thresholds)
    tablespace_warning: float = 80
    tablespace_critical: float = 90
    session_warning: float = 300
    session_critical: float = 500
    cpu_warning: float = 70
    cpu_critical: float = 90
    memory_warning: float = 70
    memory_critical: float = 90
    iowait_warning: float = 30
    iowait_critical: float = 50
    lock_warning: float = 10
    lock_critical: float = 20
    alert_log_critical_level: int = 16
    wait_time_warning_seconds: float = 300

    # 邮件通知 (Email Notification)
    email_enabled: bool = False
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_ssl: bool = False
    email_from: str = "dbdash@localhost"
    email_recipients: str = ""  # 逗号分隔 (Comma separated)

    # Webhook 通知 (Webhook Notification)
    webhook_enabled: bool = False
    webhook_url: str = ""
    webhook_secret: str = ""
    webhook_severities: str = "CRITICAL,WARNING"

    @property
    def database_url(self) -> str:
        """
        构造仪表盘存储的异步连接 URL (Build Async Storage Connection URL)

        默认使用 asyncpg 驱动连接 PostgreSQL，storage_url 非空时直接使用。
        """
        if self.storage_url:
            return self.storage_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def recipients(self) -> list[str]:
        return [r.strip() for r in self.email_recipients.split(",") if r.strip()]

    @property
    def webhook_severity_list(self) -> list[str]:
        return [s.strip().upper() for s in self.webhook_severities.split(",") if s.strip()]

    def threshold_config(self) -> ThresholdConfig:
        """从配置字段构造并校验阈值配置，非法时抛出 ConfigInvalid。"""
        pairs = {
            kind: ThresholdPair(getattr(self, f"{kind}_warning"), getattr(self, f"{kind}_critical"))
            for kind in DEFAULT_THRESHOLDS
        }
        return ThresholdConfig(
            pairs,
            alert_log_critical_level=self.alert_log_critical_level,
            wait_time_warning_seconds=self.wait_time_warning_seconds,
        )

    def validate_startup(self) -> ThresholdConfig:
        """
        启动时的配置校验 (Startup configuration validation)

        阈值校验失败或已启用的通知渠道缺少必填项时抛出 ConfigInvalid，应用不得启动。
        """
        thresholds = self.threshold_config()

        errors = []
        if self.email_enabled:
            if not self.smtp_host:
                errors.append("SMTP_HOST is required when email is enabled")
            if not self.smtp_user:
                errors.append("SMTP_USER is required when email is enabled")
            if not self.recipients:
                errors.append("EMAIL_RECIPIENTS is required when email is enabled")
        if self.webhook_enabled and not self.webhook_url:
            errors.append("WEBHOOK_URL is required when webhooks are enabled")
        if self.metrics_history_size < 1:
            errors.append("METRICS_HISTORY_SIZE must be positive")
        if errors:
            raise ConfigInvalid("Configuration validation failed", "; ".join(errors))

        if not self.oracle_password:
            logger.warning("ORACLE_PASSWORD 未设置 | ORACLE_PASSWORD not set, metric queries will likely fail")
        return thresholds

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# 全局配置实例，仅供 main.py 装配组件使用 (Global instance, used only by main.py wiring)
settings = Settings()
