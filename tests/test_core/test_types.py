"""Tests for src/core/types.py — status aggregation and derived fields."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.core.types import (
    Alert,
    AlertLevel,
    AlertStatus,
    BackupTypeSummary,
    CheckResult,
    CheckStatus,
    HealthSnapshot,
    RecoverySession,
    RecoveryStatus,
    worst_status,
)


class TestWorstStatus:
    def test_empty_is_healthy(self) -> None:
        assert worst_status([]) == CheckStatus.HEALTHY

    def test_unhealthy_dominates(self) -> None:
        statuses = [CheckStatus.HEALTHY, CheckStatus.UNHEALTHY, CheckStatus.WARNING]
        assert worst_status(statuses) == CheckStatus.UNHEALTHY

    def test_warning_over_healthy(self) -> None:
        assert worst_status([CheckStatus.HEALTHY, CheckStatus.WARNING]) == CheckStatus.WARNING


class TestHealthSnapshot:
    def test_overall_status_is_derived(self) -> None:
        snap = HealthSnapshot(checks={
            "a": CheckResult(status=CheckStatus.HEALTHY),
            "b": CheckResult(status=CheckStatus.WARNING),
        })
        assert snap.overall_status == CheckStatus.WARNING

    def test_snapshot_is_frozen(self) -> None:
        snap = HealthSnapshot()
        with pytest.raises(ValidationError):
            snap.alert_count = 3  # type: ignore[misc]


class TestBackupTypeSummary:
    def test_failure_rate(self) -> None:
        s = BackupTypeSummary(backup_type="database", total=5, completed=3, failed=1)
        assert s.failure_rate == pytest.approx(0.25)

    def test_failure_rate_without_finished_runs(self) -> None:
        assert BackupTypeSummary(backup_type="files", total=2).failure_rate == 0.0


class TestAlert:
    def test_level_rank_order(self) -> None:
        ranks = [lvl.rank for lvl in (AlertLevel.INFO, AlertLevel.WARNING, AlertLevel.ERROR, AlertLevel.CRITICAL)]
        assert ranks == sorted(ranks)

    def test_is_open(self) -> None:
        alert = Alert(level=AlertLevel.INFO, type="t", title="x")
        assert alert.is_open
        alert.status = AlertStatus.NOTIFIED
        assert alert.is_open
        alert.status = AlertStatus.RESOLVED
        assert not alert.is_open


class TestRecoverySession:
    def test_new_session_is_standby(self) -> None:
        session = RecoverySession()
        assert session.status == RecoveryStatus.STANDBY
        assert session.id.startswith("recovery_")
        assert session.completed_steps == []
