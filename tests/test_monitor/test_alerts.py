"""Tests for AlertManager — creation, evaluation rules, processing and escalation."""

from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

from src.core.config import EscalationConfig, ThresholdsConfig
from src.core.types import (
    Alert,
    AlertLevel,
    AlertStatus,
    BackupOperationSummary,
    BackupTypeSummary,
    CheckResult,
    CheckStatus,
    DispatchSummary,
    ErrorKind,
    HealthSnapshot,
)
from src.monitor.alerts import AlertManager
from src.store.memory import InMemoryStore

T0 = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.UTC)


# ── Helpers ─────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, start: datetime.datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += datetime.timedelta(minutes=minutes)


class FailingInsertStore(InMemoryStore):
    async def insert_alert(self, alert: Alert) -> None:
        raise RuntimeError("db down")


def _dispatcher() -> MagicMock:
    disp = MagicMock()
    disp.dispatch = AsyncMock(return_value=DispatchSummary(successful=1, total=1))
    return disp


def _manager(
    store: InMemoryStore | None = None,
    escalation: EscalationConfig | None = None,
    clock: FakeClock | None = None,
) -> tuple[AlertManager, InMemoryStore, MagicMock, FakeClock]:
    store = store or InMemoryStore()
    disp = _dispatcher()
    clock = clock or FakeClock()
    manager = AlertManager(store, disp, ThresholdsConfig(), escalation or EscalationConfig(), clock=clock)
    return manager, store, disp, clock


def _freshness(**types: dict[str, object]) -> HealthSnapshot:
    statuses = [CheckStatus(info["status"]) for info in types.values()]
    worst = max(statuses, key=lambda s: s.rank) if statuses else CheckStatus.HEALTHY
    return HealthSnapshot(
        timestamp=T0,
        checks={"backup_freshness": CheckResult(status=worst, data={"freshness": types})},
    )


def _snapshot(name: str, result: CheckResult) -> HealthSnapshot:
    return HealthSnapshot(timestamp=T0, checks={name: result})


# ── Creation ────────────────────────────────────────────────────


class TestCreateAlert:
    async def test_critical_dispatched_before_return(self) -> None:
        manager, store, disp, _ = _manager()

        alert_id = await manager.create_alert(AlertLevel.CRITICAL, "backup_stale", "stale", {"x": 1})

        assert alert_id is not None
        disp.dispatch.assert_awaited_once()
        stored = await store.get_alert(alert_id)
        assert stored is not None
        assert stored.status == AlertStatus.NOTIFIED
        assert stored.processed_at == T0

    async def test_error_dispatched_before_return(self) -> None:
        manager, _, disp, _ = _manager()
        await manager.create_alert(AlertLevel.ERROR, "health_check_failed", "failed")
        disp.dispatch.assert_awaited_once()

    async def test_warning_waits_for_processing(self) -> None:
        manager, store, disp, _ = _manager()

        alert_id = await manager.create_alert(AlertLevel.WARNING, "storage_high", "high")

        disp.dispatch.assert_not_awaited()
        stored = await store.get_alert(alert_id)  # type: ignore[arg-type]
        assert stored is not None
        assert stored.status == AlertStatus.ACTIVE
        assert stored.processed_at is None

    async def test_store_failure_returns_none(self) -> None:
        manager, _, disp, _ = _manager(store=FailingInsertStore())
        assert await manager.create_alert(AlertLevel.CRITICAL, "t", "x") is None
        disp.dispatch.assert_not_awaited()


# ── Processing ──────────────────────────────────────────────────


class TestProcessAlerts:
    async def test_processes_pending_once(self) -> None:
        manager, store, disp, _ = _manager()
        alert_id = await manager.create_alert(AlertLevel.WARNING, "storage_high", "high")

        first = await manager.process_alerts()
        second = await manager.process_alerts()

        assert first == {"processed": 1, "escalated": 0}
        assert second == {"processed": 0, "escalated": 0}
        assert disp.dispatch.await_count == 1
        stored = await store.get_alert(alert_id)  # type: ignore[arg-type]
        assert stored is not None
        assert stored.status == AlertStatus.NOTIFIED

    async def test_immediate_alerts_not_resent(self) -> None:
        manager, _, disp, _ = _manager()
        await manager.create_alert(AlertLevel.CRITICAL, "backup_stale", "stale")

        result = await manager.process_alerts()

        assert result["processed"] == 0
        assert disp.dispatch.await_count == 1


# ── Snapshot evaluation ─────────────────────────────────────────


class TestEvaluateFreshness:
    async def test_warning_creates_no_alert(self) -> None:
        manager, store, disp, _ = _manager()
        snap = _freshness(database={"status": "warning", "backup_count": 3, "age_hours": 26.0})

        assert await manager.evaluate(snap) == []
        assert await store.list_alerts() == []
        disp.dispatch.assert_not_awaited()

    async def test_unhealthy_creates_critical_stale(self) -> None:
        manager, store, disp, _ = _manager()
        snap = _freshness(database={"status": "unhealthy", "backup_count": 3, "age_hours": 50.0})

        ids = await manager.evaluate(snap)

        assert len(ids) == 1
        [alert] = await store.list_alerts()
        assert alert.level == AlertLevel.CRITICAL
        assert alert.type == "backup_stale"
        assert alert.data["backup_type"] == "database"
        disp.dispatch.assert_awaited_once()

    async def test_no_backups_creates_missing(self) -> None:
        manager, store, _, _ = _manager()
        snap = _freshness(files={"status": "unhealthy", "backup_count": 0})

        await manager.evaluate(snap)

        [alert] = await store.list_alerts()
        assert alert.type == "backup_missing"
        assert alert.level == AlertLevel.CRITICAL

    async def test_one_alert_per_type(self) -> None:
        manager, store, _, _ = _manager()
        snap = _freshness(
            database={"status": "unhealthy", "backup_count": 1, "age_hours": 60.0},
            files={"status": "unhealthy", "backup_count": 2, "age_hours": 70.0},
        )

        await manager.evaluate(snap)

        alerts = await store.list_alerts()
        assert sorted(a.data["backup_type"] for a in alerts) == ["database", "files"]

    async def test_failed_check_falls_back_to_generic(self) -> None:
        manager, store, disp, _ = _manager()
        snap = _snapshot("backup_freshness", CheckResult(
            status=CheckStatus.UNHEALTHY,
            detail="Check timed out after 30.0s",
            error_kind=ErrorKind.TIMEOUT,
        ))

        ids = await manager.evaluate(snap)

        assert len(ids) == 1
        [alert] = await store.list_alerts()
        assert alert.type == "health_check_failed"
        assert alert.level == AlertLevel.ERROR
        assert alert.data["check"] == "backup_freshness"
        assert alert.data["error_kind"] == "timeout"
        disp.dispatch.assert_awaited_once()

    async def test_each_cycle_reports_again(self) -> None:
        manager, store, _, _ = _manager()
        snap = _freshness(database={"status": "unhealthy", "backup_count": 1, "age_hours": 60.0})

        await manager.evaluate(snap)
        await manager.evaluate(snap)

        assert len(await store.list_alerts()) == 2


class TestEvaluateThresholds:
    async def test_storage_warning(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("storage_usage", CheckResult(
            status=CheckStatus.WARNING, data={"usage_pct": 85.0},
        )))
        [alert] = await store.list_alerts()
        assert (alert.type, alert.level) == ("storage_high", AlertLevel.WARNING)

    async def test_storage_critical(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("storage_usage", CheckResult(
            status=CheckStatus.UNHEALTHY, data={"usage_pct": 90.0},
        )))
        [alert] = await store.list_alerts()
        assert (alert.type, alert.level) == ("storage_critical", AlertLevel.CRITICAL)

    async def test_storage_below_warning(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("storage_usage", CheckResult(
            status=CheckStatus.HEALTHY, data={"usage_pct": 10.0},
        )))
        assert await store.list_alerts() == []

    async def test_performance_levels(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("performance", CheckResult(
            status=CheckStatus.WARNING, data={"avg_duration_ms": 30_000.0},
        )))
        await manager.evaluate(_snapshot("performance", CheckResult(
            status=CheckStatus.UNHEALTHY, data={"avg_duration_ms": 75_000.0},
        )))
        alerts = await store.list_alerts()
        assert [(a.type, a.level) for a in alerts] == [
            ("performance_slow", AlertLevel.WARNING),
            ("performance_degraded", AlertLevel.ERROR),
        ]


class TestEvaluateGeneric:
    async def test_database_failure_is_critical(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("database", CheckResult(
            status=CheckStatus.UNHEALTHY, detail="refused", error_kind=ErrorKind.DATABASE,
        )))
        [alert] = await store.list_alerts()
        assert alert.type == "health_check_failed"
        assert alert.level == AlertLevel.CRITICAL
        assert alert.data["error_kind"] == "database"

    async def test_timeout_failure_is_error(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("custom", CheckResult(
            status=CheckStatus.UNHEALTHY, error_kind=ErrorKind.TIMEOUT,
        )))
        [alert] = await store.list_alerts()
        assert alert.level == AlertLevel.ERROR

    async def test_warning_check(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("service_availability", CheckResult(
            status=CheckStatus.WARNING, detail="1 services unavailable",
        )))
        [alert] = await store.list_alerts()
        assert (alert.type, alert.level) == ("health_check_warning", AlertLevel.WARNING)

    async def test_healthy_snapshot_no_alerts(self) -> None:
        manager, store, _, _ = _manager()
        await manager.evaluate(_snapshot("database", CheckResult(status=CheckStatus.HEALTHY)))
        assert await store.list_alerts() == []

    async def test_evaluation_error_becomes_alert(self) -> None:
        manager, store, disp, _ = _manager()
        snap = _snapshot("backup_freshness", CheckResult(
            status=CheckStatus.UNHEALTHY,
            data={"freshness": {"database": {"status": "not-a-status"}}},
        ))

        ids = await manager.evaluate(snap)

        assert len(ids) == 1
        [alert] = await store.list_alerts()
        assert alert.type == "alert_evaluation_failed"
        assert alert.level == AlertLevel.ERROR
        assert alert.data["snapshot_id"] == snap.id
        disp.dispatch.assert_awaited_once()


# ── Backup summary evaluation ───────────────────────────────────


class TestEvaluateBackupSummary:
    async def test_failure_rate_levels(self) -> None:
        manager, store, _, _ = _manager()
        summary = BackupOperationSummary(types={
            "database": BackupTypeSummary(backup_type="database", total=10, completed=7, failed=3),
            "files": BackupTypeSummary(backup_type="files", total=10, completed=8, failed=2),
        })

        await manager.evaluate_backup_summary(summary)

        alerts = {a.data["backup_type"]: a for a in await store.list_alerts()}
        assert alerts["database"].level == AlertLevel.CRITICAL
        assert alerts["files"].level == AlertLevel.WARNING
        assert all(a.type == "backup_failure_rate" for a in alerts.values())

    async def test_low_failure_rate_no_alert(self) -> None:
        manager, store, _, _ = _manager()
        summary = BackupOperationSummary(types={
            "database": BackupTypeSummary(backup_type="database", total=20, completed=19, failed=1),
        })
        assert await manager.evaluate_backup_summary(summary) == []

    async def test_missing_expected_type(self) -> None:
        manager, store, _, _ = _manager()
        summary = BackupOperationSummary(window_hours=48, types={
            "files": BackupTypeSummary(backup_type="files"),
        })

        await manager.evaluate_backup_summary(summary, expected_types=["database", "files"])

        alerts = await store.list_alerts()
        assert sorted(a.data["backup_type"] for a in alerts) == ["database", "files"]
        assert all(a.type == "backup_missing" for a in alerts)

    async def test_verification_failures(self) -> None:
        manager, store, _, _ = _manager()
        summary = BackupOperationSummary(types={
            "database": BackupTypeSummary(
                backup_type="database", total=5, completed=5, verification_failures=2,
            ),
        })

        await manager.evaluate_backup_summary(summary)

        [alert] = await store.list_alerts()
        assert alert.type == "backup_verification_failed"
        assert alert.level == AlertLevel.ERROR
        assert alert.data["count"] == 2


# ── Escalation ──────────────────────────────────────────────────


class TestEscalation:
    async def _notified_warning(self) -> tuple[AlertManager, InMemoryStore, MagicMock, FakeClock, str]:
        manager, store, disp, clock = _manager()
        alert_id = await manager.create_alert(AlertLevel.WARNING, "storage_high", "high")
        await manager.process_alerts()
        disp.dispatch.reset_mock()
        return manager, store, disp, clock, alert_id  # type: ignore[return-value]

    async def test_not_before_delay(self) -> None:
        manager, _, disp, clock, _ = await self._notified_warning()
        clock.advance(29)
        assert await manager.check_escalation() == 0
        disp.dispatch.assert_not_awaited()

    async def test_interval_and_max(self) -> None:
        manager, store, disp, clock, alert_id = await self._notified_warning()

        clock.advance(30)
        assert await manager.check_escalation() == 1
        clock.advance(10)  # 40 min: only 10 since last escalation
        assert await manager.check_escalation() == 0
        clock.advance(5)  # 45
        assert await manager.check_escalation() == 1
        clock.advance(15)  # 60
        assert await manager.check_escalation() == 1
        clock.advance(15)  # 75: max reached
        assert await manager.check_escalation() == 0

        stored = await store.get_alert(alert_id)
        assert stored is not None
        assert stored.escalation_count == 3
        assert disp.dispatch.await_count == 3
        for call in disp.dispatch.await_args_list:
            assert call.kwargs["escalation"] is True

    async def test_first_escalation_waits_for_interval_when_longer(self) -> None:
        manager, _, _, clock = _manager(escalation=EscalationConfig(
            escalate_after_minutes=5, escalation_interval_minutes=15,
        ))
        await manager.create_alert(AlertLevel.ERROR, "t", "x")
        clock.advance(10)
        assert await manager.check_escalation() == 0
        clock.advance(5)
        assert await manager.check_escalation() == 1

    async def test_resolved_alert_not_escalated(self) -> None:
        manager, _, _, clock, alert_id = await self._notified_warning()
        await manager.resolve_alert(alert_id)
        clock.advance(120)
        assert await manager.check_escalation() == 0

    async def test_disabled(self) -> None:
        manager, _, _, clock = _manager(escalation=EscalationConfig(enabled=False))
        await manager.create_alert(AlertLevel.CRITICAL, "t", "x")
        clock.advance(600)
        assert await manager.check_escalation() == 0

    async def test_process_alerts_runs_escalation(self) -> None:
        manager, _, _, clock, _ = await self._notified_warning()
        clock.advance(30)
        assert await manager.process_alerts() == {"processed": 0, "escalated": 1}

    async def test_alert_resolved_by_earlier_escalation_skipped(self) -> None:
        manager, store, disp, clock = _manager()
        first = await manager.create_alert(AlertLevel.WARNING, "storage_high", "high")
        second = await manager.create_alert(AlertLevel.WARNING, "performance_slow", "slow")
        await manager.process_alerts()

        async def resolve_second(alert: Alert, escalation: bool = False) -> DispatchSummary:
            if alert.id == first:
                await manager.resolve_alert(second)  # type: ignore[arg-type]
            return DispatchSummary()

        disp.dispatch = AsyncMock(side_effect=resolve_second)
        clock.advance(30)

        assert await manager.check_escalation() == 1
        stored = await store.get_alert(second)  # type: ignore[arg-type]
        assert stored is not None
        assert stored.status == AlertStatus.RESOLVED
        assert stored.escalation_count == 0


class TestClosedDuringDispatch:
    async def test_resolved_while_processing(self) -> None:
        manager, store, disp, clock = _manager()
        alert_id = await manager.create_alert(AlertLevel.WARNING, "storage_high", "high")

        async def resolve_mid_send(alert: Alert, escalation: bool = False) -> DispatchSummary:
            await manager.resolve_alert(alert.id)
            return DispatchSummary()

        disp.dispatch = AsyncMock(side_effect=resolve_mid_send)
        await manager.process_alerts()

        stored = await store.get_alert(alert_id)  # type: ignore[arg-type]
        assert stored is not None
        assert stored.status == AlertStatus.RESOLVED
        assert stored.resolved_at == clock.now

        clock.advance(120)
        assert await manager.check_escalation() == 0
        assert disp.dispatch.await_count == 1

    async def test_ignored_during_immediate_dispatch(self) -> None:
        manager, store, disp, _ = _manager()

        async def ignore_mid_send(alert: Alert, escalation: bool = False) -> DispatchSummary:
            await manager.ignore_alert(alert.id)
            return DispatchSummary()

        disp.dispatch = AsyncMock(side_effect=ignore_mid_send)
        alert_id = await manager.create_alert(AlertLevel.CRITICAL, "backup_stale", "stale")

        stored = await store.get_alert(alert_id)  # type: ignore[arg-type]
        assert stored is not None
        assert stored.status == AlertStatus.IGNORED


# ── Manual transitions ──────────────────────────────────────────


class TestTransitions:
    async def test_resolve(self) -> None:
        manager, _, _, clock = _manager()
        alert_id = await manager.create_alert(AlertLevel.WARNING, "t", "x")
        clock.advance(3)

        alert = await manager.resolve_alert(alert_id)  # type: ignore[arg-type]

        assert alert is not None
        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_at == clock.now
        assert await manager.active_alerts() == []

    async def test_ignore(self) -> None:
        manager, _, _, _ = _manager()
        alert_id = await manager.create_alert(AlertLevel.INFO, "t", "x")
        alert = await manager.ignore_alert(alert_id)  # type: ignore[arg-type]
        assert alert is not None
        assert alert.status == AlertStatus.IGNORED

    async def test_resolve_missing(self) -> None:
        manager, _, _, _ = _manager()
        assert await manager.resolve_alert("nope") is None

    async def test_resolved_stays_resolved(self) -> None:
        manager, _, _, _ = _manager()
        alert_id = await manager.create_alert(AlertLevel.INFO, "t", "x")
        await manager.resolve_alert(alert_id)  # type: ignore[arg-type]
        alert = await manager.ignore_alert(alert_id)  # type: ignore[arg-type]
        assert alert is not None
        assert alert.status == AlertStatus.RESOLVED
