"""BackupMonitoringService — owns the four periodic monitor ticks."""

from __future__ import annotations

from typing import Any

import structlog

from src.core.config import IntervalsConfig
from src.core.types import AlertLevel
from src.monitor.alerts import AlertManager
from src.monitor.dispatcher import NotificationDispatcher
from src.monitor.health import HealthMonitor
from src.monitor.reports import StatusReporter
from src.monitor.scheduler import PeriodicTask
from src.store.base import Store

logger = structlog.get_logger(__name__)


class BackupMonitoringService:
    """Runs health checks, backup-status checks, alert processing and reports.

    Each concern runs on its own PeriodicTask; ticks of different tasks may
    overlap, ticks of the same task never do.

    Usage::

        service = create_monitor_stack(settings, store)
        await service.initialize()
        await service.start()
        # ...
        await service.stop()
    """

    def __init__(
        self,
        store: Store,
        health_monitor: HealthMonitor,
        alert_manager: AlertManager,
        dispatcher: NotificationDispatcher,
        reporter: StatusReporter,
        intervals: IntervalsConfig | None = None,
    ) -> None:
        self._store = store
        self._health = health_monitor
        self._alerts = alert_manager
        self._dispatcher = dispatcher
        self._reporter = reporter
        intervals = intervals or IntervalsConfig()
        self._tasks = [
            PeriodicTask("health_check", intervals.health_check * 60, self._health.run_check, run_immediately=True),
            PeriodicTask("backup_status", intervals.backup_status * 60, self._health.check_backup_status),
            PeriodicTask("alert_processing", intervals.alert_processing * 60, self._alerts.process_alerts),
            PeriodicTask("report_generation", intervals.report_generation * 60, self._reporter.generate_report),
        ]
        self._initialized = False

    # ── Properties ──────────────────────────────────────────────

    @property
    def health_monitor(self) -> HealthMonitor:
        return self._health

    @property
    def alert_manager(self) -> AlertManager:
        return self._alerts

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def reporter(self) -> StatusReporter:
        return self._reporter

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    @property
    def is_running(self) -> bool:
        return any(t.is_running for t in self._tasks)

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables and record the startup alert. Idempotent."""
        if self._initialized:
            return
        await self._store.initialize()
        await self._alerts.create_alert(
            AlertLevel.INFO,
            "system_start",
            "Backup monitoring system started",
            {"checks": self._health.check_names},
        )
        self._initialized = True
        logger.info("monitoring_initialized", checks=self._health.check_names)

    async def start(self) -> None:
        if self.is_running:
            return
        await self.initialize()
        for task in self._tasks:
            await task.start()
        logger.info("monitoring_started", tasks=[t.name for t in self._tasks])

    async def stop(self) -> None:
        for task in self._tasks:
            try:
                await task.stop()
            except Exception:
                logger.exception("periodic_task_stop_error", task=task.name)
        await self._dispatcher.close()
        logger.info("monitoring_stopped")

    async def dashboard_data(self) -> dict[str, Any]:
        return await self._reporter.dashboard_data()
