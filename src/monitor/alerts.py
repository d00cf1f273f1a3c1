"""AlertManager — alert creation, threshold evaluation, processing and escalation."""

from __future__ import annotations

import datetime
from typing import Any

import structlog

from src.core.config import EscalationConfig, ThresholdsConfig
from src.core.types import (
    Alert,
    AlertLevel,
    AlertStatus,
    BackupOperationSummary,
    CheckResult,
    CheckStatus,
    Clock,
    ErrorKind,
    HealthSnapshot,
    utcnow,
)
from src.monitor.dispatcher import NotificationDispatcher
from src.store.base import Store

logger = structlog.get_logger(__name__)

_IMMEDIATE_LEVELS = frozenset({AlertLevel.ERROR, AlertLevel.CRITICAL})

# Level for a generic unhealthy check, keyed by the kind the check reported.
_CHECK_FAILURE_LEVELS: dict[ErrorKind, AlertLevel] = {
    ErrorKind.DATABASE: AlertLevel.CRITICAL,
    ErrorKind.STORAGE: AlertLevel.CRITICAL,
}

# Checks with dedicated evaluation rules below.
FRESHNESS_CHECK = "backup_freshness"
STORAGE_CHECK = "storage_usage"
PERFORMANCE_CHECK = "performance"


class _CycleAlerts:
    """Collects alert conditions for one evaluation, one per (type, subject)."""

    def __init__(self) -> None:
        self._pending: dict[tuple[str, str], tuple[AlertLevel, str, dict[str, Any]]] = {}

    def add(
        self,
        level: AlertLevel,
        alert_type: str,
        subject: str,
        title: str,
        data: dict[str, Any],
    ) -> None:
        key = (alert_type, subject)
        existing = self._pending.get(key)
        if existing is None or level.rank > existing[0].rank:
            self._pending[key] = (level, title, data)

    def items(self) -> list[tuple[str, AlertLevel, str, dict[str, Any]]]:
        return [
            (alert_type, level, title, data)
            for (alert_type, _), (level, title, data) in self._pending.items()
        ]


class AlertManager:
    """Creates and tracks Alert records.

    Two notification paths:

    1. **Immediate** — ``create_alert`` with level error/critical dispatches
       before returning and marks the alert notified.
    2. **Periodic** — ``process_alerts`` (run on its own tick) notifies every
       still-unprocessed active alert, then runs escalation.

    Usage::

        manager = AlertManager(store, dispatcher, thresholds, escalation)
        alert_ids = await manager.evaluate(snapshot)
        await manager.process_alerts()
    """

    def __init__(
        self,
        store: Store,
        dispatcher: NotificationDispatcher,
        thresholds: ThresholdsConfig | None = None,
        escalation: EscalationConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._thresholds = thresholds or ThresholdsConfig()
        self._escalation = escalation or EscalationConfig()
        self._clock = clock

    @property
    def thresholds(self) -> ThresholdsConfig:
        return self._thresholds

    # ── Creation ────────────────────────────────────────────────

    async def create_alert(
        self,
        level: AlertLevel,
        alert_type: str,
        title: str,
        data: dict[str, Any] | None = None,
    ) -> str | None:
        """Persist a new active alert and return its id.

        Returns None if the store rejects the write (logged, not raised).
        """
        now = self._clock()
        immediate = level in _IMMEDIATE_LEVELS
        alert = Alert(
            level=level,
            type=alert_type,
            title=title,
            data=data or {},
            created_at=now,
            # Claimed by the immediate path so the processing tick skips it.
            processed_at=now if immediate else None,
        )
        try:
            await self._store.insert_alert(alert)
        except Exception:
            logger.exception("alert_create_failed", alert_type=alert_type, title=title)
            return None

        logger.info(
            "alert_created",
            alert_id=alert.id,
            level=level.value,
            alert_type=alert_type,
            title=title,
        )

        if immediate:
            await self._notify(alert)
        return alert.id

    async def _notify(self, alert: Alert) -> None:
        """Dispatch once and mark the alert notified.

        The stored alert is re-read after dispatch; one resolved or ignored
        meanwhile keeps its status.
        """
        await self._dispatcher.dispatch(alert)
        try:
            current = await self._store.get_alert(alert.id)
            if current is None or not current.is_open:
                logger.info("alert_closed_during_dispatch", alert_id=alert.id)
                return
            current.processed_at = self._clock()
            current.status = AlertStatus.NOTIFIED
            await self._store.update_alert(current)
        except Exception:
            logger.exception("alert_mark_notified_failed", alert_id=alert.id)

    # ── Snapshot evaluation ─────────────────────────────────────

    async def evaluate(self, snapshot: HealthSnapshot) -> list[str]:
        """Create alerts for every condition the snapshot shows.

        Each condition yields at most one alert per call. An error during
        evaluation becomes an ``alert_evaluation_failed`` alert.
        """
        try:
            cycle = _CycleAlerts()
            for name, result in snapshot.checks.items():
                if name == FRESHNESS_CHECK:
                    self._evaluate_freshness(result, cycle)
                elif name == STORAGE_CHECK:
                    self._evaluate_storage(result, cycle)
                elif name == PERFORMANCE_CHECK:
                    self._evaluate_performance(result, cycle)
                else:
                    self._evaluate_generic(name, result, cycle)
        except Exception as exc:
            logger.exception("alert_evaluation_failed", snapshot_id=snapshot.id)
            alert_id = await self.create_alert(
                AlertLevel.ERROR,
                "alert_evaluation_failed",
                "Alert evaluation failed",
                {"snapshot_id": snapshot.id, "error": str(exc)},
            )
            return [alert_id] if alert_id else []

        return await self._create_all(cycle, snapshot_id=snapshot.id)

    def _evaluate_freshness(self, result: CheckResult, cycle: _CycleAlerts) -> None:
        if "freshness" not in result.data:
            self._evaluate_generic(FRESHNESS_CHECK, result, cycle)
            return
        for backup_type, info in result.data["freshness"].items():
            status = CheckStatus(info.get("status", CheckStatus.HEALTHY))
            if status != CheckStatus.UNHEALTHY:
                continue
            if info.get("backup_count", 0) == 0:
                cycle.add(
                    AlertLevel.CRITICAL,
                    "backup_missing",
                    backup_type,
                    f"No {backup_type} backups found",
                    {"backup_type": backup_type, "detail": info.get("detail", "")},
                )
            else:
                cycle.add(
                    AlertLevel.CRITICAL,
                    "backup_stale",
                    backup_type,
                    f"{backup_type} backup is {info.get('age_hours')}h old",
                    {
                        "backup_type": backup_type,
                        "age_hours": info.get("age_hours"),
                        "latest_backup": info.get("latest_backup"),
                        "critical_threshold_hours": self._thresholds.backup_age_hours.critical,
                    },
                )

    def _evaluate_storage(self, result: CheckResult, cycle: _CycleAlerts) -> None:
        usage = result.data.get("usage_pct")
        if usage is None:
            self._evaluate_generic(STORAGE_CHECK, result, cycle)
            return
        limits = self._thresholds.disk_usage_pct
        data = {"usage_pct": usage, "detail": result.detail}
        if usage >= limits.critical:
            cycle.add(AlertLevel.CRITICAL, "storage_critical", "", "Backup storage nearly full", data)
        elif usage >= limits.warning:
            cycle.add(AlertLevel.WARNING, "storage_high", "", "Backup storage usage high", data)

    def _evaluate_performance(self, result: CheckResult, cycle: _CycleAlerts) -> None:
        avg_ms = result.data.get("avg_duration_ms")
        if avg_ms is None:
            self._evaluate_generic(PERFORMANCE_CHECK, result, cycle)
            return
        limits = self._thresholds.response_time_ms
        data = {"avg_duration_ms": avg_ms, "detail": result.detail}
        if avg_ms >= limits.critical:
            cycle.add(AlertLevel.ERROR, "performance_degraded", "", "Backup operations very slow", data)
        elif avg_ms >= limits.warning:
            cycle.add(AlertLevel.WARNING, "performance_slow", "", "Backup operations slow", data)

    def _evaluate_generic(self, name: str, result: CheckResult, cycle: _CycleAlerts) -> None:
        data = {"check": name, "detail": result.detail}
        if result.error_kind is not None:
            data["error_kind"] = result.error_kind.value
        if result.status == CheckStatus.UNHEALTHY:
            level = _CHECK_FAILURE_LEVELS.get(
                result.error_kind or ErrorKind.UNKNOWN, AlertLevel.ERROR,
            )
            cycle.add(level, "health_check_failed", name, f"Health check failed: {name}", data)
        elif result.status == CheckStatus.WARNING:
            cycle.add(
                AlertLevel.WARNING, "health_check_warning", name, f"Health check warning: {name}", data,
            )

    # ── Backup summary evaluation ───────────────────────────────

    async def evaluate_backup_summary(
        self,
        summary: BackupOperationSummary,
        expected_types: list[str] | None = None,
    ) -> list[str]:
        """Alert on missing backups, failure rates and failed verifications."""
        try:
            cycle = _CycleAlerts()
            limits = self._thresholds.failure_rate
            for backup_type in expected_types or []:
                if summary.types.get(backup_type) is None or summary.types[backup_type].total == 0:
                    cycle.add(
                        AlertLevel.CRITICAL,
                        "backup_missing",
                        backup_type,
                        f"No {backup_type} backups in the last {summary.window_hours}h",
                        {"backup_type": backup_type, "window_hours": summary.window_hours},
                    )
            for backup_type, stats in summary.types.items():
                rate = stats.failure_rate
                data = {
                    "backup_type": backup_type,
                    "failure_rate": round(rate, 4),
                    "failed": stats.failed,
                    "total": stats.total,
                }
                if stats.completed + stats.failed > 0 and rate >= limits.critical:
                    cycle.add(
                        AlertLevel.CRITICAL, "backup_failure_rate", backup_type,
                        f"{backup_type} backup failure rate {rate:.0%}", data,
                    )
                elif stats.completed + stats.failed > 0 and rate >= limits.warning:
                    cycle.add(
                        AlertLevel.WARNING, "backup_failure_rate", backup_type,
                        f"{backup_type} backup failure rate {rate:.0%}", data,
                    )
                if stats.verification_failures > 0:
                    cycle.add(
                        AlertLevel.ERROR, "backup_verification_failed", backup_type,
                        f"{stats.verification_failures} {backup_type} backup(s) failed verification",
                        {"backup_type": backup_type, "count": stats.verification_failures},
                    )
        except Exception as exc:
            logger.exception("backup_summary_evaluation_failed")
            alert_id = await self.create_alert(
                AlertLevel.ERROR,
                "alert_evaluation_failed",
                "Backup summary evaluation failed",
                {"error": str(exc)},
            )
            return [alert_id] if alert_id else []

        return await self._create_all(cycle)

    async def _create_all(self, cycle: _CycleAlerts, **context: Any) -> list[str]:
        alert_ids: list[str] = []
        for alert_type, level, title, data in cycle.items():
            alert_id = await self.create_alert(level, alert_type, title, data)
            if alert_id is not None:
                alert_ids.append(alert_id)
        if alert_ids:
            logger.info("alerts_evaluated", created=len(alert_ids), **context)
        return alert_ids

    # ── Processing & escalation ─────────────────────────────────

    async def process_alerts(self) -> dict[str, int]:
        """Notify unprocessed active alerts, then run escalation.

        Returns ``{"processed": n, "escalated": m}``.
        """
        processed = 0
        pending = await self._store.list_alerts(
            statuses=[AlertStatus.ACTIVE], unprocessed_only=True,
        )
        for alert in pending:
            try:
                await self._notify(alert)
                processed += 1
                logger.info("alert_processed", alert_id=alert.id)
            except Exception:
                logger.exception("alert_process_failed", alert_id=alert.id)

        escalated = await self.check_escalation()
        return {"processed": processed, "escalated": escalated}

    def escalation_due(self, alert: Alert, now: datetime.datetime) -> bool:
        """Whether *alert* should be re-notified at *now*."""
        cfg = self._escalation
        if not cfg.enabled or not alert.is_open:
            return False
        if alert.escalation_count >= cfg.max_escalations:
            return False
        interval = datetime.timedelta(minutes=cfg.escalation_interval_minutes)
        if alert.escalated_at is None:
            first_delay = max(
                interval, datetime.timedelta(minutes=cfg.escalate_after_minutes),
            )
            return now - alert.created_at >= first_delay
        return now - alert.escalated_at >= interval

    async def check_escalation(self) -> int:
        """Re-dispatch open alerts whose escalation delay has elapsed."""
        if not self._escalation.enabled:
            return 0
        now = self._clock()
        escalated = 0
        candidates = await self._store.list_alerts(
            statuses=[AlertStatus.ACTIVE, AlertStatus.NOTIFIED],
        )
        for candidate in candidates:
            if not self.escalation_due(candidate, now):
                continue
            try:
                # Earlier dispatches in this loop may have let a resolve through.
                alert = await self._store.get_alert(candidate.id)
                if alert is None or not self.escalation_due(alert, now):
                    continue
                alert.escalation_count += 1
                alert.escalated_at = now
                await self._store.update_alert(alert)
                await self._dispatcher.dispatch(alert, escalation=True)
                escalated += 1
                logger.warning(
                    "alert_escalated",
                    alert_id=alert.id,
                    escalation_count=alert.escalation_count,
                    max_escalations=self._escalation.max_escalations,
                )
            except Exception:
                logger.exception("alert_escalation_failed", alert_id=candidate.id)
        return escalated

    # ── Manual transitions & reads ──────────────────────────────

    async def resolve_alert(self, alert_id: str) -> Alert | None:
        return await self._transition(alert_id, AlertStatus.RESOLVED)

    async def ignore_alert(self, alert_id: str) -> Alert | None:
        return await self._transition(alert_id, AlertStatus.IGNORED)

    async def _transition(self, alert_id: str, status: AlertStatus) -> Alert | None:
        alert = await self._store.get_alert(alert_id)
        if alert is None or not alert.is_open:
            return alert
        alert.status = status
        if status == AlertStatus.RESOLVED:
            alert.resolved_at = self._clock()
        await self._store.update_alert(alert)
        logger.info("alert_status_changed", alert_id=alert_id, status=status.value)
        return alert

    async def active_alerts(self) -> list[Alert]:
        return await self._store.list_alerts(
            statuses=[AlertStatus.ACTIVE, AlertStatus.NOTIFIED],
        )
