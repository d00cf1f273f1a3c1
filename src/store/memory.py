"""InMemoryStore — process-local store for tests and single-node runs."""

from __future__ import annotations

import datetime

from src.core.types import (
    Alert,
    AlertStatus,
    BackupOperation,
    HealthSnapshot,
    RecoveryEvent,
    RecoveryProcedure,
)
from src.store.base import Store
from src.store.exceptions import AlertNotFoundError


class InMemoryStore(Store):
    """Keeps every table in plain Python containers.

    Returned models are copies, so callers cannot mutate stored state
    without going through ``update_alert``.
    """

    def __init__(self) -> None:
        self._snapshots: list[HealthSnapshot] = []
        self._alerts: dict[str, Alert] = {}
        self._events: list[RecoveryEvent] = []
        self._procedures: list[RecoveryProcedure] = []
        self._operations: list[BackupOperation] = []

    async def initialize(self) -> None:
        return None

    async def ping(self) -> None:
        return None

    # ── Health snapshots ────────────────────────────────────────

    async def append_health_snapshot(self, snapshot: HealthSnapshot) -> None:
        self._snapshots.append(snapshot)

    async def list_health_snapshots(
        self,
        since: datetime.datetime | None = None,
        limit: int | None = None,
    ) -> list[HealthSnapshot]:
        rows = sorted(self._snapshots, key=lambda s: s.timestamp)
        if since is not None:
            rows = [s for s in rows if s.timestamp >= since]
        if limit is not None:
            rows = rows[-limit:]
        return rows

    # ── Alerts ──────────────────────────────────────────────────

    async def insert_alert(self, alert: Alert) -> None:
        self._alerts[alert.id] = alert.model_copy(deep=True)

    async def update_alert(self, alert: Alert) -> None:
        if alert.id not in self._alerts:
            raise AlertNotFoundError(alert.id)
        self._alerts[alert.id] = alert.model_copy(deep=True)

    async def get_alert(self, alert_id: str) -> Alert | None:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    async def list_alerts(
        self,
        statuses: list[AlertStatus] | None = None,
        unprocessed_only: bool = False,
        since: datetime.datetime | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        rows = sorted(self._alerts.values(), key=lambda a: a.created_at)
        if statuses is not None:
            rows = [a for a in rows if a.status in statuses]
        if unprocessed_only:
            rows = [a for a in rows if a.processed_at is None]
        if since is not None:
            rows = [a for a in rows if a.created_at >= since]
        if limit is not None:
            rows = rows[:limit]
        return [a.model_copy(deep=True) for a in rows]

    # ── Recovery ────────────────────────────────────────────────

    async def append_recovery_event(self, event: RecoveryEvent) -> None:
        self._events.append(event)

    async def list_recovery_events(
        self, event_type: str | None = None,
    ) -> list[RecoveryEvent]:
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.event_type == event_type]

    async def save_recovery_procedures(
        self, procedures: list[RecoveryProcedure],
    ) -> None:
        self._procedures = list(procedures)

    async def list_recovery_procedures(self) -> list[RecoveryProcedure]:
        return list(self._procedures)

    # ── Backup operations ───────────────────────────────────────

    async def record_backup_operation(self, operation: BackupOperation) -> None:
        self._operations.append(operation)

    async def list_backup_operations(
        self, since: datetime.datetime | None = None,
    ) -> list[BackupOperation]:
        rows = sorted(self._operations, key=lambda o: o.created_at, reverse=True)
        if since is not None:
            rows = [o for o in rows if o.created_at >= since]
        return rows
