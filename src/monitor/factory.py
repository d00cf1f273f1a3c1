"""Convenience factory for wiring the monitoring stack."""

from __future__ import annotations

from src.core.config import Settings
from src.core.types import Clock, utcnow
from src.monitor.alerts import AlertManager
from src.monitor.channels import NotificationChannel, create_channels
from src.monitor.dispatcher import NotificationDispatcher
from src.monitor.health import HealthMonitor
from src.monitor.reports import StatusReporter
from src.monitor.service import BackupMonitoringService
from src.store.base import Store


def create_monitor_stack(
    settings: Settings,
    store: Store,
    channels: list[NotificationChannel] | None = None,
    clock: Clock = utcnow,
) -> BackupMonitoringService:
    """Build the dispatcher, alert manager, health monitor and reporter.

    Args:
        settings: Root settings.
        store: Persistence engine shared by every component.
        channels: Override the channels built from ``settings.notifications``.
        clock: Time source (tests pass a fake).

    Returns:
        An initialized-but-not-started BackupMonitoringService.
    """
    if channels is None:
        channels = create_channels(settings.notifications)

    dispatcher = NotificationDispatcher(
        channels=channels,
        channel_timeout_secs=settings.notifications.channel_timeout_secs,
    )
    alert_manager = AlertManager(
        store,
        dispatcher,
        thresholds=settings.thresholds,
        escalation=settings.escalation,
        clock=clock,
    )
    health_monitor = HealthMonitor(
        store,
        alert_manager,
        config=settings.monitor,
        thresholds=settings.thresholds,
        clock=clock,
    )
    reporter = StatusReporter(
        store,
        health_monitor,
        alert_manager,
        monitor_config=settings.monitor,
        recovery_config=settings.recovery,
        clock=clock,
    )
    return BackupMonitoringService(
        store,
        health_monitor,
        alert_manager,
        dispatcher,
        reporter,
        intervals=settings.intervals,
    )
