"""Tests for src/core/config.py — YAML loading, defaults, SecretStr."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from src.core.config import (
    EscalationConfig,
    LoggingConfig,
    NotificationsConfig,
    RecoveryConfig,
    Settings,
    SmsConfig,
    ThresholdsConfig,
    get_settings,
    load_settings,
    reset_settings,
)


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_intervals(self) -> None:
        s = Settings()
        assert s.intervals.health_check == 5.0
        assert s.intervals.backup_status == 15.0
        assert s.intervals.alert_processing == 1.0
        assert s.intervals.report_generation == 60.0

    def test_default_thresholds(self) -> None:
        cfg = ThresholdsConfig()
        assert cfg.backup_age_hours.warning == 25.0
        assert cfg.backup_age_hours.critical == 49.0
        assert cfg.failure_rate.warning == 0.10
        assert cfg.failure_rate.critical == 0.25
        assert cfg.disk_usage_pct.critical == 90.0
        assert cfg.response_time_ms.warning == 30_000.0

    def test_default_escalation(self) -> None:
        cfg = EscalationConfig()
        assert cfg.enabled is True
        assert cfg.escalate_after_minutes == 30.0
        assert cfg.max_escalations == 3
        assert cfg.escalation_interval_minutes == 15.0

    def test_default_recovery_objectives(self) -> None:
        cfg = RecoveryConfig()
        assert cfg.rto_minutes["full_system"] == 120.0
        assert cfg.rpo_minutes["critical"] == 15.0
        assert cfg.phase_budget_minutes["database_recovery"] == 30.0

    def test_channels_disabled_by_default(self) -> None:
        cfg = NotificationsConfig()
        assert not cfg.email.enabled
        assert not cfg.chat_ops.enabled
        assert not cfg.webhook.enabled
        assert not cfg.sms.enabled
        assert cfg.channel_timeout_secs == 10.0

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_store_is_memory(self) -> None:
        assert Settings().store.url == ""


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "thresholds": {"backup_age_hours": {"warning": 12, "critical": 24}},
            "notifications": {
                "email": {
                    "enabled": True,
                    "api_key": "sg-key",
                    "to": ["ops@example.com"],
                },
            },
            "escalation": {"max_escalations": 5},
            "store": {"url": "sqlite:///monitor.db"},
            "logging": {"level": "DEBUG", "format": "console"},
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        settings = load_settings(config_file)

        assert settings.thresholds.backup_age_hours.warning == 12
        assert settings.thresholds.backup_age_hours.critical == 24
        assert settings.notifications.email.enabled is True
        assert settings.notifications.email.api_key.get_secret_value() == "sg-key"
        assert settings.notifications.email.to == ["ops@example.com"]
        assert settings.escalation.max_escalations == 5
        assert settings.store.url == "sqlite:///monitor.db"
        assert settings.logging.level == "DEBUG"

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.intervals.health_check == 5.0
        assert settings.monitor.backup_types == ["database", "files"]

    def test_load_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        settings = load_settings(config_file)
        assert settings.escalation.max_escalations == 3

    def test_partial_yaml_merges_with_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"intervals": {"health_check": 1}}))

        settings = load_settings(config_file)
        assert settings.intervals.health_check == 1
        # Other defaults still intact
        assert settings.intervals.backup_status == 15.0
        assert settings.thresholds.failure_rate.critical == 0.25

    def test_repository_example_config_loads(self) -> None:
        path = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"
        settings = load_settings(path)
        assert settings.recovery.rto_minutes["database"] == 30
        assert settings.notifications.sms.to == []

    def test_get_settings_caches(self, tmp_path: Path) -> None:
        load_settings(tmp_path / "nonexistent.yaml")
        assert get_settings() is get_settings()


class TestSecretStr:
    """Sensitive fields should use SecretStr to prevent leaking."""

    def test_secret_str_repr_does_not_leak(self) -> None:
        cfg = SmsConfig(auth_token="twilio-secret")  # type: ignore[arg-type]
        repr_str = repr(cfg)
        assert "twilio-secret" not in repr_str
        assert "**********" in repr_str

    def test_recovery_database_url_is_secret(self) -> None:
        cfg = RecoveryConfig(database_url="postgresql://u:pw@db/app")  # type: ignore[arg-type]
        assert "pw@db" not in repr(cfg)
        assert cfg.database_url.get_secret_value() == "postgresql://u:pw@db/app"
