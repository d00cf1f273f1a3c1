"""Store — the read/append interface every persistence engine implements."""

from __future__ import annotations

import abc
import datetime

from src.core.types import (
    Alert,
    AlertStatus,
    BackupOperation,
    HealthSnapshot,
    RecoveryEvent,
    RecoveryProcedure,
)


class Store(abc.ABC):
    """Durable tables for health snapshots, alerts and recovery events.

    Snapshots and events are append-only. Alerts are inserted once and then
    only updated (status transitions), never deleted.
    """

    # ── Lifecycle ───────────────────────────────────────────────

    @abc.abstractmethod
    async def initialize(self) -> None:
        """Create tables if missing. Idempotent."""

    @abc.abstractmethod
    async def ping(self) -> None:
        """Raise if the store is unreachable."""

    async def close(self) -> None:
        """Release connections."""

    # ── Health snapshots ────────────────────────────────────────

    @abc.abstractmethod
    async def append_health_snapshot(self, snapshot: HealthSnapshot) -> None: ...

    @abc.abstractmethod
    async def list_health_snapshots(
        self,
        since: datetime.datetime | None = None,
        limit: int | None = None,
    ) -> list[HealthSnapshot]:
        """Snapshots in ascending timestamp order."""

    async def latest_health_snapshot(self) -> HealthSnapshot | None:
        snapshots = await self.list_health_snapshots()
        return snapshots[-1] if snapshots else None

    # ── Alerts ──────────────────────────────────────────────────

    @abc.abstractmethod
    async def insert_alert(self, alert: Alert) -> None: ...

    @abc.abstractmethod
    async def update_alert(self, alert: Alert) -> None:
        """Overwrite the stored alert. Raises AlertNotFoundError if absent."""

    @abc.abstractmethod
    async def get_alert(self, alert_id: str) -> Alert | None: ...

    @abc.abstractmethod
    async def list_alerts(
        self,
        statuses: list[AlertStatus] | None = None,
        unprocessed_only: bool = False,
        since: datetime.datetime | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Alerts in ascending created_at order."""

    # ── Recovery ────────────────────────────────────────────────

    @abc.abstractmethod
    async def append_recovery_event(self, event: RecoveryEvent) -> None: ...

    @abc.abstractmethod
    async def list_recovery_events(
        self, event_type: str | None = None,
    ) -> list[RecoveryEvent]: ...

    @abc.abstractmethod
    async def save_recovery_procedures(
        self, procedures: list[RecoveryProcedure],
    ) -> None:
        """Replace the procedure catalog."""

    @abc.abstractmethod
    async def list_recovery_procedures(self) -> list[RecoveryProcedure]: ...

    # ── Backup operations ───────────────────────────────────────

    @abc.abstractmethod
    async def record_backup_operation(self, operation: BackupOperation) -> None: ...

    @abc.abstractmethod
    async def list_backup_operations(
        self, since: datetime.datetime | None = None,
    ) -> list[BackupOperation]:
        """Operations in descending created_at order (newest first)."""
