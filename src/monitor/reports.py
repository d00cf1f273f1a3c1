"""StatusReporter — periodic status report and dashboard data."""

from __future__ import annotations

import datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.core.config import MonitorConfig, RecoveryConfig
from src.core.types import (
    Alert,
    AlertLevel,
    BackupOperationSummary,
    Clock,
    HealthSnapshot,
    utcnow,
)
from src.monitor.alerts import AlertManager
from src.monitor.health import HealthMonitor
from src.recovery.objectives import ObjectiveStatus, evaluate_objectives
from src.store.base import Store

logger = structlog.get_logger(__name__)

TREND_WINDOW = datetime.timedelta(hours=24)


class StatusReport(BaseModel):
    generated_at: datetime.datetime = Field(default_factory=utcnow)
    overview: dict[str, Any] = Field(default_factory=dict)
    active_alerts: list[Alert] = Field(default_factory=list)
    health_trend: list[dict[str, Any]] = Field(default_factory=list)
    latest_snapshot: HealthSnapshot | None = None
    backup_summary: BackupOperationSummary | None = None
    objectives: list[ObjectiveStatus] = Field(default_factory=list)


class StatusReporter:
    """Builds a StatusReport from the store and the monitor's latest state."""

    def __init__(
        self,
        store: Store,
        health_monitor: HealthMonitor,
        alert_manager: AlertManager,
        monitor_config: MonitorConfig | None = None,
        recovery_config: RecoveryConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._health = health_monitor
        self._alerts = alert_manager
        self._monitor_config = monitor_config or MonitorConfig()
        self._recovery_config = recovery_config or RecoveryConfig()
        self._clock = clock
        self._last_report: StatusReport | None = None

    @property
    def last_report(self) -> StatusReport | None:
        return self._last_report

    async def generate_report(self) -> StatusReport:
        now = self._clock()
        since = now - TREND_WINDOW

        snapshots = await self._store.list_health_snapshots(since=since)
        recent_alerts = await self._store.list_alerts(since=since)
        active = await self._alerts.active_alerts()
        summary = self._health.last_summary or await self._health.summarize_backups()
        objectives = await evaluate_objectives(
            self._store,
            self._recovery_config,
            expected_types=self._monitor_config.backup_types,
            now=now,
        )
        latest = snapshots[-1] if snapshots else await self._store.latest_health_snapshot()

        overview = {
            "overall_status": latest.overall_status.value if latest else "unknown",
            "snapshots_24h": len(snapshots),
            "alerts_24h": len(recent_alerts),
            "active_alerts": len(active),
            "critical_alerts": sum(1 for a in active if a.level == AlertLevel.CRITICAL),
            "stale_backup_types": sorted(t for t, s in summary.types.items() if s.is_stale),
            "objective_breaches": sum(1 for o in objectives if o.compliant is False),
        }
        report = StatusReport(
            generated_at=now,
            overview=overview,
            active_alerts=active,
            health_trend=[
                {
                    "timestamp": s.timestamp.isoformat(),
                    "overall_status": s.overall_status.value,
                    "alert_count": s.alert_count,
                }
                for s in snapshots
            ],
            latest_snapshot=latest,
            backup_summary=summary,
            objectives=objectives,
        )
        self._last_report = report
        logger.info("status_report_generated", **overview)
        return report

    async def dashboard_data(self) -> dict[str, Any]:
        """JSON-ready view of the latest report, generating one if needed."""
        report = self._last_report or await self.generate_report()
        data = report.model_dump(mode="json")
        if report.latest_snapshot is not None:
            data["latest_snapshot"]["overall_status"] = report.latest_snapshot.overall_status.value
        return data
