"""Domain types shared by the monitoring and recovery services."""

from __future__ import annotations

import datetime
import uuid
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime.datetime:
    """Timezone-aware current UTC time."""
    return datetime.datetime.now(datetime.UTC)


Clock = Callable[[], datetime.datetime]


def new_id() -> str:
    return str(uuid.uuid4())


# ── Error classification ────────────────────────────────────────


class ErrorKind(StrEnum):
    """What kind of failure an operation reported.

    Chosen by the code that raises, never inferred from message text.
    """

    DATABASE = "database"
    STORAGE = "storage"
    NETWORK = "network"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    INTEGRITY = "integrity"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


# ── Health Types ────────────────────────────────────────────────


class CheckStatus(StrEnum):
    """Outcome of a single health check."""

    HEALTHY = "healthy"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK: dict[CheckStatus, int] = {
    CheckStatus.HEALTHY: 0,
    CheckStatus.WARNING: 1,
    CheckStatus.UNHEALTHY: 2,
}


def worst_status(statuses: list[CheckStatus]) -> CheckStatus:
    """Worst-of aggregation: unhealthy > warning > healthy."""
    if not statuses:
        return CheckStatus.HEALTHY
    return max(statuses, key=lambda s: s.rank)


class CheckResult(BaseModel):
    """Result of one registered health check."""

    status: CheckStatus
    detail: str = ""
    response_time_ms: float = 0.0
    error_kind: ErrorKind | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class HealthSnapshot(BaseModel):
    """One point-in-time aggregate of all registered health checks."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    timestamp: datetime.datetime = Field(default_factory=utcnow)
    checks: dict[str, CheckResult] = Field(default_factory=dict)
    alert_count: int = 0

    @property
    def overall_status(self) -> CheckStatus:
        return worst_status([c.status for c in self.checks.values()])


# ── Backup Types ────────────────────────────────────────────────


class BackupStatus(StrEnum):
    """Lifecycle of a backup operation recorded by the backup system."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class VerificationStatus(StrEnum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


class BackupOperation(BaseModel):
    """A backup run, as recorded by the (external) backup system."""

    id: str = Field(default_factory=new_id)
    backup_type: str
    status: BackupStatus = BackupStatus.COMPLETED
    created_at: datetime.datetime = Field(default_factory=utcnow)
    size_bytes: int | None = None
    duration_seconds: float | None = None
    verification_status: VerificationStatus = VerificationStatus.PENDING
    backup_path: str = ""
    error_message: str = ""


class BackupTypeSummary(BaseModel):
    """Derived per-type statistics over a trailing window."""

    backup_type: str
    total: int = 0
    completed: int = 0
    failed: int = 0
    latest_success: datetime.datetime | None = None
    age_hours: float | None = None
    is_stale: bool = False
    verification_failures: int = 0

    @property
    def failure_rate(self) -> float:
        finished = self.completed + self.failed
        if finished == 0:
            return 0.0
        return self.failed / finished


class BackupOperationSummary(BaseModel):
    """Derived summary of recent backup operations, keyed by backup type."""

    generated_at: datetime.datetime = Field(default_factory=utcnow)
    window_hours: int = 48
    types: dict[str, BackupTypeSummary] = Field(default_factory=dict)


# ── Alert Types ─────────────────────────────────────────────────


class AlertLevel(StrEnum):
    """Alert severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK: dict[AlertLevel, int] = {
    AlertLevel.INFO: 0,
    AlertLevel.WARNING: 1,
    AlertLevel.ERROR: 2,
    AlertLevel.CRITICAL: 3,
}


class AlertStatus(StrEnum):
    """active → notified → resolved, or ignored."""

    ACTIVE = "active"
    NOTIFIED = "notified"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class Alert(BaseModel):
    """A persisted alert. Never deleted, only status-transitioned."""

    id: str = Field(default_factory=new_id)
    level: AlertLevel
    type: str
    title: str
    data: dict[str, Any] = Field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: datetime.datetime = Field(default_factory=utcnow)
    processed_at: datetime.datetime | None = None
    escalated_at: datetime.datetime | None = None
    escalation_count: int = 0
    resolved_at: datetime.datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in (AlertStatus.ACTIVE, AlertStatus.NOTIFIED)


class NotificationResult(BaseModel):
    """Outcome of sending one alert to one channel."""

    channel: str
    success: bool
    error: str | None = None


class DispatchSummary(BaseModel):
    """Aggregate of one dispatch call. Ephemeral, logged only."""

    successful: int = 0
    failed: int = 0
    total: int = 0
    results: list[NotificationResult] = Field(default_factory=list)


# ── Recovery Types ──────────────────────────────────────────────


class RecoveryStatus(StrEnum):
    """standby → active → completed | failed."""

    STANDBY = "standby"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class StepFailure(BaseModel):
    step: str
    error: str
    kind: ErrorKind = ErrorKind.UNKNOWN


class RecoverySession(BaseModel):
    """State of one full-recovery run."""

    id: str = Field(default_factory=lambda: f"recovery_{uuid.uuid4().hex[:12]}")
    status: RecoveryStatus = RecoveryStatus.STANDBY
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    phase: str | None = None
    current_step: str | None = None
    completed_steps: list[str] = Field(default_factory=list)
    failed_steps: list[StepFailure] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    duration_minutes: int = 0


class RecoveryEvent(BaseModel):
    """Row of the disaster_recovery_events table."""

    event_id: str = Field(default_factory=new_id)
    event_type: str
    status: str
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime.datetime = Field(default_factory=utcnow)


class RecoveryProcedure(BaseModel):
    """Row of the static recovery_procedures catalog."""

    procedure_name: str
    procedure_type: str
    estimated_duration_minutes: int = 0
    dependencies: list[str] = Field(default_factory=list)
    is_critical: bool = False
    instructions: str = ""
