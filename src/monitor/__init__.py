"""Backup monitoring, alerting and notification subsystem."""

from src.monitor.alerts import AlertManager
from src.monitor.channels import (
    ChatOpsChannel,
    EmailChannel,
    NotificationChannel,
    SmsChannel,
    WebhookChannel,
    create_channels,
)
from src.monitor.dispatcher import NotificationDispatcher
from src.monitor.exceptions import CheckError, MonitorError, NotificationError
from src.monitor.factory import create_monitor_stack
from src.monitor.formatters import format_alert
from src.monitor.health import HealthMonitor
from src.monitor.reports import StatusReport, StatusReporter
from src.monitor.scheduler import PeriodicTask
from src.monitor.service import BackupMonitoringService
from src.monitor.types import AlertMessage

__all__ = [
    "AlertManager",
    "AlertMessage",
    "BackupMonitoringService",
    "ChatOpsChannel",
    "CheckError",
    "EmailChannel",
    "HealthMonitor",
    "MonitorError",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationError",
    "PeriodicTask",
    "SmsChannel",
    "StatusReport",
    "StatusReporter",
    "WebhookChannel",
    "create_channels",
    "create_monitor_stack",
    "format_alert",
]
