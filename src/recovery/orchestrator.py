"""RecoveryOrchestrator — runs the full disaster recovery sequence.

Phases and steps run one at a time in declared order. A failing step is
recorded and the phase moves on, unless the step is critical: then the
failure unwinds the whole recovery and the session ends ``failed``.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Any

import structlog

from src.core.config import RecoveryConfig
from src.core.types import (
    Alert,
    AlertLevel,
    Clock,
    ErrorKind,
    RecoveryEvent,
    RecoveryProcedure,
    RecoverySession,
    RecoveryStatus,
    StepFailure,
    utcnow,
)
from src.monitor.dispatcher import NotificationDispatcher
from src.recovery.actions import StepRunner
from src.recovery.exceptions import (
    CriticalStepError,
    RecoveryInProgressError,
    StepError,
)
from src.recovery.objectives import FULL_RECOVERY_EVENT
from src.recovery.procedures import (
    PHASES,
    RecoveryPhase,
    RecoveryStep,
    default_procedures,
    is_critical_step,
)
from src.store.base import Store

logger = structlog.get_logger(__name__)

RECOVERY_ALERT_TYPE = "disaster_recovery"


def _elapsed_minutes(start: datetime.datetime | None, end: datetime.datetime) -> int:
    if start is None:
        return 0
    return round((end - start).total_seconds() / 60.0)


class RecoveryOrchestrator:
    """Executes full recoveries, one at a time.

    Usage::

        orchestrator = RecoveryOrchestrator(store, RecoveryActions(store, cfg),
                                            dispatcher, cfg)
        await orchestrator.initialize()
        session = await orchestrator.execute_full_recovery({"reason": "dc-outage"})
        await orchestrator.drain_notifications()
    """

    def __init__(
        self,
        store: Store,
        actions: StepRunner,
        dispatcher: NotificationDispatcher | None = None,
        config: RecoveryConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._actions = actions
        self._dispatcher = dispatcher
        self._config = config or RecoveryConfig()
        self._clock = clock
        self._session = RecoverySession()
        self._notifications: set[asyncio.Task[None]] = set()

    # ── Properties ──────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self._session.status == RecoveryStatus.ACTIVE

    # ── Catalog ─────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Seed the procedure catalog if the store has none."""
        if not await self._store.list_recovery_procedures():
            await self._store.save_recovery_procedures(default_procedures())
            logger.info("recovery_procedures_seeded", count=len(default_procedures()))

    async def _load_catalog(self) -> dict[str, RecoveryProcedure]:
        procedures = await self._store.list_recovery_procedures()
        if not procedures:
            procedures = default_procedures()
            await self._store.save_recovery_procedures(procedures)
        return {p.procedure_name: p for p in procedures}

    # ── Status ──────────────────────────────────────────────────

    def get_recovery_status(self) -> RecoverySession:
        """Copy of the current session with a live duration."""
        session = self._session.model_copy(deep=True)
        if session.status == RecoveryStatus.ACTIVE:
            session.duration_minutes = _elapsed_minutes(session.start_time, self._clock())
        return session

    # ── Execution ───────────────────────────────────────────────

    async def execute_full_recovery(
        self, options: dict[str, Any] | None = None,
    ) -> RecoverySession:
        """Run every phase and return the finished session.

        A critical step failure is returned as a ``failed`` session, not
        raised. Raises RecoveryInProgressError if a recovery is active.
        """
        if self.is_active:
            raise RecoveryInProgressError(self._session.id)

        session = RecoverySession(
            status=RecoveryStatus.ACTIVE,
            start_time=self._clock(),
            options=dict(options or {}),
        )
        self._session = session
        logger.warning("recovery_started", session_id=session.id, options=session.options)

        try:
            self._notify(
                AlertLevel.CRITICAL,
                "Disaster recovery initiated",
                {"recovery_id": session.id, "start_time": session.start_time.isoformat()},
            )
            await self._record(FULL_RECOVERY_EVENT, "started", {"recovery_id": session.id})
            catalog = await self._load_catalog()
            for phase, steps in PHASES.items():
                await self._run_phase(session, phase, steps, catalog)
        except CriticalStepError as exc:
            await self._fail(session, str(exc), failed_at=exc.step)
        except Exception as exc:
            logger.exception("recovery_error", session_id=session.id)
            await self._fail(session, str(exc) or type(exc).__name__, failed_at=session.current_step)
        else:
            await self._complete(session)
        return self.get_recovery_status()

    async def _run_phase(
        self,
        session: RecoverySession,
        phase: RecoveryPhase,
        steps: tuple[RecoveryStep, ...],
        catalog: dict[str, RecoveryProcedure],
    ) -> None:
        session.phase = phase.value
        budget_secs = self._config.phase_budget_minutes.get(phase.value, 0.0) * 60.0
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget_secs
        logger.info("recovery_phase_started", session_id=session.id, phase=phase.value)
        await self._record("phase", "started", {"recovery_id": session.id, "phase": phase.value})

        for step in steps:
            session.current_step = step.value
            procedure = catalog.get(step.value)
            critical = procedure.is_critical if procedure else is_critical_step(step)
            try:
                output = await self._run_step(session, step, deadline - loop.time(), budget_secs > 0)
            except Exception as exc:
                kind = exc.kind if isinstance(exc, StepError) else ErrorKind.UNKNOWN
                error = str(exc) or type(exc).__name__
                session.failed_steps.append(StepFailure(step=step.value, error=error, kind=kind))
                logger.error(
                    "recovery_step_failed",
                    session_id=session.id,
                    phase=phase.value,
                    step=step.value,
                    error=error,
                    kind=kind.value,
                    critical=critical,
                )
                await self._record("step", "failed", {
                    "recovery_id": session.id,
                    "phase": phase.value,
                    "step": step.value,
                    "error": error,
                    "kind": kind.value,
                    "critical": critical,
                })
                if critical:
                    raise CriticalStepError(step.value, error, kind) from exc
                continue

            session.completed_steps.append(step.value)
            logger.info("recovery_step_completed", session_id=session.id, step=step.value)
            await self._record("step", "completed", {
                "recovery_id": session.id,
                "phase": phase.value,
                "step": step.value,
                "output": output or {},
            })

        logger.info("recovery_phase_completed", session_id=session.id, phase=phase.value)
        await self._record("phase", "completed", {"recovery_id": session.id, "phase": phase.value})

    async def _run_step(
        self,
        session: RecoverySession,
        step: RecoveryStep,
        remaining_secs: float,
        has_budget: bool,
    ) -> dict[str, Any] | None:
        if not (self._config.enforce_step_timeouts and has_budget):
            return await self._actions.run(step, session)
        if remaining_secs <= 0:
            raise StepError("Phase time budget exhausted", kind=ErrorKind.TIMEOUT)
        try:
            return await asyncio.wait_for(self._actions.run(step, session), timeout=remaining_secs)
        except TimeoutError as exc:
            raise StepError(
                f"Step timed out after {remaining_secs:.0f}s", kind=ErrorKind.TIMEOUT,
            ) from exc

    async def _complete(self, session: RecoverySession) -> None:
        session.end_time = self._clock()
        session.status = RecoveryStatus.COMPLETED
        session.current_step = None
        session.duration_minutes = _elapsed_minutes(session.start_time, session.end_time)
        logger.info(
            "recovery_completed",
            session_id=session.id,
            duration_minutes=session.duration_minutes,
            completed_steps=len(session.completed_steps),
            failed_steps=len(session.failed_steps),
        )
        await self._record(FULL_RECOVERY_EVENT, "completed", {
            "recovery_id": session.id,
            "duration_minutes": session.duration_minutes,
            "completed_steps": session.completed_steps,
            "failed_steps": [f.model_dump(mode="json") for f in session.failed_steps],
        })
        self._notify(
            AlertLevel.INFO,
            "Disaster recovery completed successfully",
            {"recovery_id": session.id, "duration_minutes": session.duration_minutes},
        )

    async def _fail(self, session: RecoverySession, error: str, failed_at: str | None) -> None:
        session.end_time = self._clock()
        session.status = RecoveryStatus.FAILED
        session.error = error
        session.duration_minutes = _elapsed_minutes(session.start_time, session.end_time)
        logger.error("recovery_failed", session_id=session.id, error=error, failed_at=failed_at)
        await self._record(FULL_RECOVERY_EVENT, "failed", {
            "recovery_id": session.id,
            "error": error,
            "failed_at": failed_at,
            "duration_minutes": session.duration_minutes,
            "completed_steps": session.completed_steps,
            "failed_steps": [f.model_dump(mode="json") for f in session.failed_steps],
        })
        self._notify(
            AlertLevel.CRITICAL,
            "Disaster recovery failed",
            {"recovery_id": session.id, "error": error, "failed_at": failed_at},
        )

    # ── Events & notifications ──────────────────────────────────

    async def _record(self, event_type: str, status: str, data: dict[str, Any]) -> None:
        """Persist a recovery event. Store failures are logged, not raised."""
        event = RecoveryEvent(
            event_type=event_type,
            status=status,
            message=data.get("message", ""),
            data=data,
            created_at=self._clock(),
        )
        try:
            await self._store.append_recovery_event(event)
        except Exception:
            logger.exception("recovery_event_log_failed", event_type=event_type, status=status)

    def _notify(self, level: AlertLevel, title: str, data: dict[str, Any]) -> None:
        """Send without blocking the recovery; the outcome is recorded as an event."""
        task = asyncio.create_task(self._send_notification(level, title, data))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _send_notification(self, level: AlertLevel, title: str, data: dict[str, Any]) -> None:
        alert = Alert(level=level, type=RECOVERY_ALERT_TYPE, title=title, data=data)
        event_data: dict[str, Any] = {"level": level.value, "title": title, **data}
        if self._dispatcher is not None:
            try:
                summary = await self._dispatcher.dispatch(alert)
                event_data.update(successful=summary.successful, failed=summary.failed, total=summary.total)
            except Exception as exc:
                logger.exception("recovery_notification_failed", title=title)
                await self._record("notification", "failed", {**event_data, "error": str(exc)})
                return
        await self._record("notification", "sent", event_data)

    async def drain_notifications(self) -> None:
        """Wait for every in-flight notification to finish."""
        while self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)
