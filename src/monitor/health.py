"""HealthMonitor — periodic health checks and backup freshness assessment.

Each registered check is an async callable returning a CheckResult. A run
executes all checks concurrently, each under its own timeout, so one slow or
broken check only marks itself unhealthy. The resulting HealthSnapshot is
persisted and then handed to the AlertManager.
"""

from __future__ import annotations

import asyncio
import datetime
import time
from collections.abc import Awaitable, Callable

import aiohttp
import structlog

from src.core.config import MonitorConfig, Threshold, ThresholdsConfig
from src.core.types import (
    AlertLevel,
    AlertStatus,
    BackupOperation,
    BackupOperationSummary,
    BackupStatus,
    BackupTypeSummary,
    CheckResult,
    CheckStatus,
    Clock,
    ErrorKind,
    HealthSnapshot,
    VerificationStatus,
    utcnow,
    worst_status,
)
from src.monitor.alerts import (
    FRESHNESS_CHECK,
    PERFORMANCE_CHECK,
    STORAGE_CHECK,
    AlertManager,
)
from src.monitor.exceptions import CheckError
from src.store.base import Store

logger = structlog.get_logger(__name__)

CheckFn = Callable[[], Awaitable[CheckResult]]

DATABASE_CHECK = "database"
SERVICE_CHECK = "service_availability"


def classify(value: float, threshold: Threshold) -> CheckStatus:
    """Inclusive threshold classification: ``>= critical`` is unhealthy."""
    if value >= threshold.critical:
        return CheckStatus.UNHEALTHY
    if value >= threshold.warning:
        return CheckStatus.WARNING
    return CheckStatus.HEALTHY


def _hours_between(later: datetime.datetime, earlier: datetime.datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0


class HealthMonitor:
    """Runs registered health checks and produces HealthSnapshots.

    Usage::

        monitor = HealthMonitor(store, alert_manager, settings.monitor,
                                settings.thresholds)
        snapshot = await monitor.run_check()       # health tick
        summary = await monitor.check_backup_status()  # backup-status tick
    """

    def __init__(
        self,
        store: Store,
        alert_manager: AlertManager,
        config: MonitorConfig | None = None,
        thresholds: ThresholdsConfig | None = None,
        clock: Clock = utcnow,
        register_defaults: bool = True,
    ) -> None:
        self._store = store
        self._alerts = alert_manager
        self._config = config or MonitorConfig()
        self._thresholds = thresholds or ThresholdsConfig()
        self._clock = clock
        self._checks: dict[str, CheckFn] = {}
        self._last_snapshot: HealthSnapshot | None = None
        self._last_summary: BackupOperationSummary | None = None

        if register_defaults:
            self.register_check(DATABASE_CHECK, self.check_database)
            self.register_check(FRESHNESS_CHECK, self.check_backup_freshness)
            self.register_check(STORAGE_CHECK, self.check_storage_usage)
            self.register_check(SERVICE_CHECK, self.check_service_availability)
            self.register_check(PERFORMANCE_CHECK, self.check_performance)

    # ── Properties ──────────────────────────────────────────────

    @property
    def check_names(self) -> list[str]:
        return list(self._checks)

    @property
    def last_snapshot(self) -> HealthSnapshot | None:
        return self._last_snapshot

    @property
    def last_summary(self) -> BackupOperationSummary | None:
        return self._last_summary

    def register_check(self, name: str, fn: CheckFn) -> None:
        """Add or replace a named check."""
        self._checks[name] = fn

    def unregister_check(self, name: str) -> None:
        self._checks.pop(name, None)

    # ── Health tick ─────────────────────────────────────────────

    async def run_check(self) -> HealthSnapshot:
        """Run every check, persist the snapshot and evaluate alerts.

        Never raises. Internal failures become an error-level
        ``health_check_failed`` alert.
        """
        snapshot: HealthSnapshot | None = None
        try:
            names = list(self._checks)
            results = await asyncio.gather(
                *(self._run_one(name, self._checks[name]) for name in names),
            )
            alert_count = len(await self._store.list_alerts(
                statuses=[AlertStatus.ACTIVE, AlertStatus.NOTIFIED],
            ))
            snapshot = HealthSnapshot(
                timestamp=self._clock(),
                checks=dict(zip(names, results)),
                alert_count=alert_count,
            )
            await self._store.append_health_snapshot(snapshot)
            self._last_snapshot = snapshot
            logger.info(
                "health_check_completed",
                snapshot_id=snapshot.id,
                overall_status=snapshot.overall_status.value,
                checks={n: r.status.value for n, r in snapshot.checks.items()},
            )
            await self._alerts.evaluate(snapshot)
        except Exception as exc:
            logger.exception("health_check_error")
            await self._alerts.create_alert(
                AlertLevel.ERROR,
                "health_check_failed",
                "Health check failed",
                {"error": str(exc)},
            )
            if snapshot is None:
                snapshot = HealthSnapshot(
                    timestamp=self._clock(),
                    checks={
                        "monitor": CheckResult(
                            status=CheckStatus.UNHEALTHY,
                            detail=str(exc),
                            error_kind=ErrorKind.UNKNOWN,
                        ),
                    },
                )
        return snapshot

    async def _run_one(self, name: str, fn: CheckFn) -> CheckResult:
        timeout = self._config.check_timeout_secs
        start = time.monotonic()

        def elapsed_ms() -> float:
            return round((time.monotonic() - start) * 1000.0, 2)

        try:
            result = await asyncio.wait_for(fn(), timeout=timeout)
        except TimeoutError:
            logger.warning("health_check_timeout", check=name, timeout_secs=timeout)
            return CheckResult(
                status=CheckStatus.UNHEALTHY,
                detail=f"Check timed out after {timeout}s",
                response_time_ms=elapsed_ms(),
                error_kind=ErrorKind.TIMEOUT,
            )
        except CheckError as exc:
            logger.warning("health_check_failed", check=name, error=str(exc), kind=exc.kind.value)
            return CheckResult(
                status=CheckStatus.UNHEALTHY,
                detail=str(exc),
                response_time_ms=elapsed_ms(),
                error_kind=exc.kind,
            )
        except Exception as exc:
            logger.exception("health_check_crashed", check=name)
            return CheckResult(
                status=CheckStatus.UNHEALTHY,
                detail=str(exc) or type(exc).__name__,
                response_time_ms=elapsed_ms(),
                error_kind=ErrorKind.UNKNOWN,
            )

        if not result.response_time_ms:
            result = result.model_copy(update={"response_time_ms": elapsed_ms()})
        return result

    # ── Default checks ──────────────────────────────────────────

    async def _operations_since(self, delta: datetime.timedelta) -> list[BackupOperation]:
        try:
            return await self._store.list_backup_operations(since=self._clock() - delta)
        except Exception as exc:
            raise CheckError(f"Backup operations unavailable: {exc}", kind=ErrorKind.DATABASE) from exc

    async def check_database(self) -> CheckResult:
        """Store connectivity plus recent backup activity."""
        try:
            await self._store.ping()
        except Exception as exc:
            raise CheckError(f"Database connectivity failed: {exc}", kind=ErrorKind.DATABASE) from exc
        recent = await self._operations_since(datetime.timedelta(hours=24))
        return CheckResult(
            status=CheckStatus.HEALTHY,
            detail="Database connectivity and recent activity verified",
            data={"recent_operations": len(recent)},
        )

    async def check_backup_freshness(self) -> CheckResult:
        """Age of the latest completed backup for every backup type.

        A type with no completed backup inside the lookback window is
        unhealthy rather than skipped.
        """
        lookback = self._config.freshness_lookback_days
        now = self._clock()
        operations = await self._operations_since(datetime.timedelta(days=lookback))
        completed = [op for op in operations if op.status == BackupStatus.COMPLETED]

        types = list(dict.fromkeys(
            [*self._config.backup_types, *(op.backup_type for op in operations)],
        ))
        freshness: dict[str, dict[str, object]] = {}
        statuses: list[CheckStatus] = []
        for backup_type in types:
            ops = [op for op in completed if op.backup_type == backup_type]
            if not ops:
                statuses.append(CheckStatus.UNHEALTHY)
                freshness[backup_type] = {
                    "status": CheckStatus.UNHEALTHY.value,
                    "backup_count": 0,
                    "latest_backup": None,
                    "age_hours": None,
                    "is_stale": True,
                    "detail": f"No {backup_type} backups found in the last {lookback} days",
                }
                continue

            latest = max(op.created_at for op in ops)
            age_hours = _hours_between(now, latest)
            status = classify(age_hours, self._thresholds.backup_age_hours)
            statuses.append(status)
            freshness[backup_type] = {
                "status": status.value,
                "backup_count": len(ops),
                "latest_backup": latest.isoformat(),
                "age_hours": round(age_hours, 2),
                "is_stale": status != CheckStatus.HEALTHY,
                "detail": f"Latest {backup_type} backup {age_hours:.1f}h ago",
            }

        overall = worst_status(statuses)
        stale = sorted(t for t, info in freshness.items() if info["is_stale"])
        detail = f"Stale or missing backups: {', '.join(stale)}" if stale else "All backups are fresh"
        return CheckResult(status=overall, detail=detail, data={"freshness": freshness})

    async def check_storage_usage(self) -> CheckResult:
        """Estimated usage from summed backup sizes against configured capacity."""
        operations = await self._operations_since(
            datetime.timedelta(days=self._config.storage_window_days),
        )
        sizes = [op.size_bytes for op in operations if op.size_bytes is not None]
        total = sum(sizes)
        capacity = self._config.storage_capacity_bytes
        usage_pct = min(total / capacity * 100.0, 100.0) if capacity > 0 else 100.0
        status = classify(usage_pct, self._thresholds.disk_usage_pct)
        return CheckResult(
            status=status,
            detail=f"Estimated {usage_pct:.1f}% storage usage",
            data={
                "usage_pct": round(usage_pct, 2),
                "total_size_bytes": total,
                "total_backups": len(sizes),
                "avg_size_bytes": round(total / len(sizes), 1) if sizes else 0.0,
                "capacity_bytes": capacity,
            },
        )

    async def check_service_availability(self) -> CheckResult:
        """Store, backup system and configured HTTP endpoints."""
        services: dict[str, dict[str, object]] = {}

        try:
            await self._store.ping()
            services["database"] = {"status": "available"}
        except Exception as exc:
            services["database"] = {"status": "unavailable", "error": str(exc)}

        try:
            recent = await self._store.list_backup_operations(
                since=self._clock() - datetime.timedelta(hours=1),
            )
            services["backup_system"] = {"status": "available", "recent_activity": len(recent)}
        except Exception as exc:
            services["backup_system"] = {"status": "unavailable", "error": str(exc)}

        if self._config.service_urls:
            timeout = aiohttp.ClientTimeout(total=self._config.check_timeout_secs)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                for name, url in self._config.service_urls.items():
                    services[name] = await _probe_url(session, url)

        unavailable = [n for n, s in services.items() if s["status"] != "available"]
        status = CheckStatus.WARNING if unavailable else CheckStatus.HEALTHY
        detail = (
            f"{len(unavailable)} services unavailable: {', '.join(unavailable)}"
            if unavailable
            else "All services available"
        )
        return CheckResult(
            status=status,
            detail=detail,
            data={
                "services": services,
                "available_count": len(services) - len(unavailable),
                "total_count": len(services),
            },
        )

    async def check_performance(self) -> CheckResult:
        """Average backup duration against the response-time thresholds."""
        operations = await self._operations_since(
            datetime.timedelta(hours=self._config.performance_window_hours),
        )
        durations = [op.duration_seconds for op in operations if op.duration_seconds is not None]
        if not durations:
            return CheckResult(
                status=CheckStatus.HEALTHY,
                detail="No timed backup operations in window",
                data={"operations_count": 0},
            )
        avg_secs = sum(durations) / len(durations)
        avg_ms = avg_secs * 1000.0
        return CheckResult(
            status=classify(avg_ms, self._thresholds.response_time_ms),
            detail=f"Average operation duration: {avg_secs:.1f}s",
            data={
                "avg_duration_ms": round(avg_ms, 1),
                "max_duration_ms": round(max(durations) * 1000.0, 1),
                "operations_count": len(durations),
            },
        )

    # ── Backup-status tick ──────────────────────────────────────

    async def summarize_backups(self) -> BackupOperationSummary:
        """Per-type statistics over the trailing status window."""
        window = self._config.status_window_hours
        now = self._clock()
        operations = await self._store.list_backup_operations(
            since=now - datetime.timedelta(hours=window),
        )
        stats: dict[str, BackupTypeSummary] = {
            t: BackupTypeSummary(backup_type=t) for t in self._config.backup_types
        }
        for op in operations:
            summary = stats.setdefault(op.backup_type, BackupTypeSummary(backup_type=op.backup_type))
            summary.total += 1
            if op.status == BackupStatus.FAILED:
                summary.failed += 1
            elif op.status == BackupStatus.COMPLETED:
                summary.completed += 1
                if op.verification_status == VerificationStatus.FAILED:
                    summary.verification_failures += 1
                if summary.latest_success is None or op.created_at > summary.latest_success:
                    summary.latest_success = op.created_at

        warning_hours = self._thresholds.backup_age_hours.warning
        for summary in stats.values():
            if summary.latest_success is None:
                summary.is_stale = True
                continue
            summary.age_hours = round(_hours_between(now, summary.latest_success), 2)
            summary.is_stale = summary.age_hours >= warning_hours

        return BackupOperationSummary(generated_at=now, window_hours=window, types=stats)

    async def check_backup_status(self) -> BackupOperationSummary | None:
        """Summarize recent backups and evaluate them for alerts. Never raises."""
        try:
            summary = await self.summarize_backups()
            self._last_summary = summary
            await self._alerts.evaluate_backup_summary(
                summary, expected_types=self._config.backup_types,
            )
            logger.info(
                "backup_status_checked",
                types={
                    t: {"total": s.total, "failed": s.failed, "stale": s.is_stale}
                    for t, s in summary.types.items()
                },
            )
            return summary
        except Exception as exc:
            logger.exception("backup_status_check_error")
            await self._alerts.create_alert(
                AlertLevel.ERROR,
                "backup_status_check_failed",
                "Backup status check failed",
                {"error": str(exc)},
            )
            return None


async def _probe_url(session: aiohttp.ClientSession, url: str) -> dict[str, object]:
    try:
        async with session.get(url) as resp:
            if resp.status < 500:
                return {"status": "available", "http_status": resp.status}
            return {"status": "unavailable", "http_status": resp.status}
    except (aiohttp.ClientError, TimeoutError) as exc:
        return {"status": "unavailable", "error": str(exc) or type(exc).__name__}
