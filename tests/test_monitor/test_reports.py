"""Tests for StatusReporter — overview, trend, objectives and dashboard data."""

from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

from src.core.config import MonitorConfig, RecoveryConfig, ThresholdsConfig
from src.core.types import (
    AlertLevel,
    BackupOperation,
    CheckResult,
    CheckStatus,
    DispatchSummary,
    HealthSnapshot,
    RecoveryEvent,
)
from src.monitor.alerts import AlertManager
from src.monitor.health import HealthMonitor
from src.monitor.reports import StatusReporter
from src.store.memory import InMemoryStore

T0 = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.UTC)


class FakeClock:
    def __init__(self, start: datetime.datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now


def _reporter(
    store: InMemoryStore,
    recovery: RecoveryConfig | None = None,
) -> tuple[StatusReporter, AlertManager, HealthMonitor]:
    clock = FakeClock()
    disp = MagicMock()
    disp.dispatch = AsyncMock(return_value=DispatchSummary())
    cfg = MonitorConfig(backup_types=["database"])
    manager = AlertManager(store, disp, ThresholdsConfig(), clock=clock)
    monitor = HealthMonitor(store, manager, cfg, clock=clock)
    reporter = StatusReporter(
        store, monitor, manager,
        monitor_config=cfg,
        recovery_config=recovery or RecoveryConfig(rpo_minutes={"database": 60.0}),
        clock=clock,
    )
    return reporter, manager, monitor


def _snapshot(hours_ago: float, status: CheckStatus) -> HealthSnapshot:
    return HealthSnapshot(
        timestamp=T0 - datetime.timedelta(hours=hours_ago),
        checks={"database": CheckResult(status=status)},
    )


# ── generate_report ─────────────────────────────────────────────


class TestGenerateReport:
    async def test_empty_store(self) -> None:
        store = InMemoryStore()
        reporter, _, _ = _reporter(store)

        report = await reporter.generate_report()

        assert report.generated_at == T0
        assert report.overview["overall_status"] == "unknown"
        assert report.overview["snapshots_24h"] == 0
        assert report.overview["stale_backup_types"] == ["database"]
        assert report.latest_snapshot is None
        assert reporter.last_report is report

    async def test_overview_counts(self) -> None:
        store = InMemoryStore()
        reporter, manager, _ = _reporter(store)
        await store.append_health_snapshot(_snapshot(30, CheckStatus.HEALTHY))
        await store.append_health_snapshot(_snapshot(2, CheckStatus.HEALTHY))
        await store.append_health_snapshot(_snapshot(1, CheckStatus.WARNING))
        await manager.create_alert(AlertLevel.CRITICAL, "backup_missing", "No database backups found")
        await manager.create_alert(AlertLevel.WARNING, "storage_high", "Backup storage usage high")

        report = await reporter.generate_report()

        ov = report.overview
        assert ov["overall_status"] == "warning"
        assert ov["snapshots_24h"] == 2
        assert ov["alerts_24h"] == 2
        assert ov["active_alerts"] == 2
        assert ov["critical_alerts"] == 1
        assert [p["overall_status"] for p in report.health_trend] == ["healthy", "warning"]

    async def test_objective_breaches(self) -> None:
        store = InMemoryStore()
        reporter, _, _ = _reporter(store)
        await store.record_backup_operation(
            BackupOperation(backup_type="database", created_at=T0 - datetime.timedelta(hours=2)),
        )
        await store.append_recovery_event(RecoveryEvent(
            event_type="full_recovery",
            status="failed",
            data={"duration_minutes": 12, "error": "restore failed"},
            created_at=T0 - datetime.timedelta(hours=5),
        ))

        report = await reporter.generate_report()

        by_key = {(o.objective, o.resource): o for o in report.objectives}
        assert by_key[("rpo", "database")].compliant is False
        assert by_key[("rto", "full_system")].compliant is False
        assert report.overview["objective_breaches"] == 2

    async def test_uses_last_backup_summary(self) -> None:
        store = InMemoryStore()
        reporter, _, monitor = _reporter(store)
        await store.record_backup_operation(
            BackupOperation(backup_type="database", created_at=T0 - datetime.timedelta(hours=1)),
        )
        summary = await monitor.check_backup_status()

        report = await reporter.generate_report()

        assert report.backup_summary is summary
        assert report.overview["stale_backup_types"] == []


# ── dashboard_data ──────────────────────────────────────────────


class TestDashboardData:
    async def test_json_ready(self) -> None:
        store = InMemoryStore()
        reporter, _, _ = _reporter(store)
        await store.append_health_snapshot(_snapshot(1, CheckStatus.UNHEALTHY))

        data = await reporter.dashboard_data()

        assert data["generated_at"].startswith("2024-06-01T12:00:00")
        assert data["latest_snapshot"]["overall_status"] == "unhealthy"
        assert data["latest_snapshot"]["checks"]["database"]["status"] == "unhealthy"

    async def test_reuses_last_report(self) -> None:
        store = InMemoryStore()
        reporter, _, _ = _reporter(store)
        report = await reporter.generate_report()
        await store.append_health_snapshot(_snapshot(1, CheckStatus.UNHEALTHY))

        data = await reporter.dashboard_data()

        assert reporter.last_report is report
        assert data["latest_snapshot"] is None
