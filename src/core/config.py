"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class IntervalsConfig(BaseModel):
    """Tick intervals for the periodic monitors, in minutes."""

    health_check: float = 5.0
    backup_status: float = 15.0
    alert_processing: float = 1.0
    report_generation: float = 60.0


class Threshold(BaseModel):
    """A warning/critical pair. Comparisons are inclusive (``>=``)."""

    warning: float
    critical: float


class ThresholdsConfig(BaseModel):
    """Alert thresholds."""

    backup_age_hours: Threshold = Threshold(warning=25.0, critical=49.0)
    failure_rate: Threshold = Threshold(warning=0.10, critical=0.25)
    disk_usage_pct: Threshold = Threshold(warning=80.0, critical=90.0)
    response_time_ms: Threshold = Threshold(warning=30_000.0, critical=60_000.0)


class MonitorConfig(BaseModel):
    """Health check behaviour."""

    backup_types: list[str] = ["database", "files"]
    check_timeout_secs: float = 30.0
    freshness_lookback_days: int = 7
    status_window_hours: int = 48
    storage_window_days: int = 30
    storage_capacity_bytes: int = 10 * 1024 * 1024 * 1024
    performance_window_hours: int = 24
    service_urls: dict[str, str] = Field(default_factory=dict)


class EmailConfig(BaseModel):
    """Email delivery through the SendGrid v3 HTTP API."""

    enabled: bool = False
    api_key: SecretStr = SecretStr("")
    api_url: str = "https://api.sendgrid.com/v3/mail/send"
    from_address: str = "alerts@example.com"
    to: list[str] = Field(default_factory=list)
    escalation_to: list[str] = Field(default_factory=list)


class ChatOpsConfig(BaseModel):
    """Slack-compatible incoming webhook."""

    enabled: bool = False
    webhook_url: SecretStr = SecretStr("")
    channel: str = "#alerts"
    username: str = "Backup Monitor"


class WebhookConfig(BaseModel):
    """Generic JSON webhook."""

    enabled: bool = False
    url: SecretStr = SecretStr("")


class SmsConfig(BaseModel):
    """SMS delivery through the Twilio REST API (critical alerts only)."""

    enabled: bool = False
    account_sid: str = ""
    auth_token: SecretStr = SecretStr("")
    from_number: str = ""
    to: list[str] = Field(default_factory=list)
    api_base: str = "https://api.twilio.com/2010-04-01"


class NotificationsConfig(BaseModel):
    """Container for all notification channel configurations."""

    email: EmailConfig = EmailConfig()
    chat_ops: ChatOpsConfig = ChatOpsConfig()
    webhook: WebhookConfig = WebhookConfig()
    sms: SmsConfig = SmsConfig()
    channel_timeout_secs: float = 10.0


class EscalationConfig(BaseModel):
    """Re-notification of unresolved alerts."""

    enabled: bool = True
    escalate_after_minutes: float = 30.0
    max_escalations: int = 3
    escalation_interval_minutes: float = 15.0


class RecoveryConfig(BaseModel):
    """Disaster recovery objectives and step execution settings."""

    rto_minutes: dict[str, float] = {
        "database": 30.0,
        "files": 60.0,
        "full_system": 120.0,
    }
    rpo_minutes: dict[str, float] = {
        "database": 60.0,
        "files": 240.0,
        "critical": 15.0,
    }
    phase_budget_minutes: dict[str, float] = {
        "assessment": 15.0,
        "database_recovery": 30.0,
        "file_recovery": 60.0,
        "application_recovery": 30.0,
        "verification": 15.0,
    }
    enforce_step_timeouts: bool = True
    workspace_dir: str = "./recovery"
    database_url: SecretStr = SecretStr("")
    files_target_dir: str = "./"
    critical_tables: list[str] = [
        "customers",
        "orders",
        "backup_operations",
    ]
    required_paths: list[str] = Field(default_factory=list)
    commands: dict[str, str] = Field(default_factory=dict)


class StoreConfig(BaseModel):
    """Persistent store. An empty URL selects the in-memory store."""

    url: str = ""
    echo: bool = False


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    intervals: IntervalsConfig = IntervalsConfig()
    thresholds: ThresholdsConfig = ThresholdsConfig()
    monitor: MonitorConfig = MonitorConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    escalation: EscalationConfig = EscalationConfig()
    recovery: RecoveryConfig = RecoveryConfig()
    store: StoreConfig = StoreConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
